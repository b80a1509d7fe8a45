"""
recallcore - dual-regime review scheduling engine.

Subpackages:
- recallcore.fsrs: retention models, review state machine, management engine, persistence
- recallcore.analytics: review-log metrics and the adaptive retention controller
- recallcore.calibration: weight calibration gateway and fitters
"""

__version__ = "0.1.0"
