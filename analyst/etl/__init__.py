"""ETL module: sports data providers and targeted per-question fetching."""

from analyst.etl.api_football import APIBudgetExceeded, APIFootballProvider
from analyst.etl.base import SportsDataProvider
from analyst.etl.competitions import COMPETITIONS, Competition
from analyst.etl.targeted_fetch import TargetedDataBundle, TargetedFetchOrchestrator

__all__ = [
    "SportsDataProvider",
    "APIFootballProvider",
    "APIBudgetExceeded",
    "Competition",
    "COMPETITIONS",
    "TargetedDataBundle",
    "TargetedFetchOrchestrator",
]
