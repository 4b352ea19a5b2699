"""Exception hierarchy for capture, session and link failures."""


class CaptureError(Exception):
    """Base class for every failure raised by interview_capture."""

    code = "CAPTURE_ERROR"

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class ConcurrencyError(CaptureError):
    """Session claim/release requested in the wrong state."""


class AlreadyRecording(ConcurrencyError):
    code = "ALREADY_RECORDING"

    def __init__(self, message: str = "Already recording"):
        super().__init__(message)


class NotRecording(ConcurrencyError):
    code = "NOT_RECORDING"

    def __init__(self, message: str = "Not recording"):
        super().__init__(message)


class DeviceError(CaptureError):
    """An audio device could not be opened or driven."""

    code = "DEVICE_OPEN_FAILED"


class NoInputDevice(DeviceError):
    code = "NO_INPUT_DEVICE"

    def __init__(self, message: str = "No input device found"):
        super().__init__(message)


class UnsupportedFormat(DeviceError):
    code = "UNSUPPORTED_FORMAT"


class CaptureUnavailable(CaptureError):
    """Combined system audio capture is denied, missing or broken.

    Codes: PERMISSION_DENIED, NO_CAPTURE_SURFACE, PLATFORM_API_FAILURE,
    SYSTEM_AUDIO_UNSUPPORTED.
    """

    code = "PLATFORM_API_FAILURE"


class LinkConnectionError(CaptureError):
    """The STT service could not be reached."""

    code = "CONNECTION_FAILED"


class ConnectionTimeout(LinkConnectionError):
    code = "CONNECTION_TIMEOUT"
