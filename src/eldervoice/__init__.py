"""
ElderVoice - companion calls for older adults.

Application shell around the signup wizard: settings, storage, web API, CLI.
"""

__version__ = "0.1.0"
