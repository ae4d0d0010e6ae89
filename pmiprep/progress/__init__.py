from pmiprep.progress.aggregator import ProgressAggregator, ProgressRepository, is_exam_ready

__all__ = ["ProgressAggregator", "ProgressRepository", "is_exam_ready"]
