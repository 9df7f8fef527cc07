class VoxError(Exception):
    """Base exception for all application errors."""
    pass

class SynthesisError(VoxError):
    """The synthesis engine is missing, exited non-zero or produced no audio."""
    pass

class PlaybackError(VoxError):
    """The audio player could not be launched."""
    pass

class ConfigurationError(VoxError):
    pass
