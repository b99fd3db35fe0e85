from .progress import ProgressReporter
