"""Engine exceptions."""

from updown.services.backtest.window import Window


class WindowEvaluationError(RuntimeError):
    """A single window could not be loaded or evaluated."""

    def __init__(self, window: Window, cause: BaseException) -> None:
        super().__init__(
            f"window {window.symbol} closing {window.close_time} failed: "
            f"{type(cause).__name__}: {cause}"
        )
        self.window = window
        self.cause = cause
