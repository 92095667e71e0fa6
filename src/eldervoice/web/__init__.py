"""ElderVoice web API."""
