"""Plots of detected sleep cycles."""

from .hypnogram import plot_sleep_cycles, save_sleep_cycle_plot

__all__ = ['plot_sleep_cycles', 'save_sleep_cycle_plot']
