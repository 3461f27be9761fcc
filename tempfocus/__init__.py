"""
TEMPFOCUS - Temperature-Driven Focus Compensation

Keeps a telescope in focus during an imaging session by moving the focuser
as its temperature probe drifts, pausing the autoguider for every move.
"""

__version__ = "0.1.0"

# Version tuple for programmatic comparison
VERSION_INFO = (0, 1, 0)

from tempfocus.exceptions import TempFocusError
from tempfocus.config import CompensationConfig, TempFocusConfig, load_config
