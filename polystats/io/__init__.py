from polystats.io.writers import (  # noqa
    DataFrameCSVWriter,
    StatisticsSink,
    StatisticsXMLWriter,
    read_statistics_xml,
)

__all__ = ["DataFrameCSVWriter", "StatisticsSink", "StatisticsXMLWriter", "read_statistics_xml"]
