class SpinWickException(Exception):
    pass


class IntegrityException(SpinWickException):
    pass


class NotFoundException(SpinWickException):
    pass


class ConfigurationException(SpinWickException):
    pass


class TerminalFailure(SpinWickException):
    """A remote system reached a state from which no retry can recover."""


class WaitTimeout(SpinWickException):
    """A polling stage ran past its deadline."""

    def __init__(self, stage: str, seconds: float) -> None:
        self.stage = stage
        self.seconds = seconds
        super().__init__(f"timed out after {seconds:g}s waiting for {stage}")


class WaitCancelled(WaitTimeout):
    def __init__(self, stage: str) -> None:
        self.stage = stage
        self.seconds = 0.0
        SpinWickException.__init__(self, f"cancelled while waiting for {stage}")
