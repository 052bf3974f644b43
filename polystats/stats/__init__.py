from polystats.stats.population import LabelPopulationEntry, LabelPopulationMap  # noqa isort:skip
from polystats.stats.accumulator import StreamingLabelStatisticsAccumulator  # noqa

__all__ = ["LabelPopulationEntry", "LabelPopulationMap", "StreamingLabelStatisticsAccumulator"]
