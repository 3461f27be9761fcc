"""
TEMPFOCUS Services Package

Equipment and control services used by the compensation controller.

- services.focus: Focuser control, temperature compensation, polling monitor
- services.guiding: PHD2 guiding integration
- services.alerts: User-visible notifications
"""
