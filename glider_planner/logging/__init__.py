from .solve_logger import NumpyEncoder, ProgressSink, SolveEvent, SolveLogger, null_sink

__all__ = ["NumpyEncoder", "ProgressSink", "SolveEvent", "SolveLogger", "null_sink"]
