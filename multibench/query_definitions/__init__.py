"""
Benchmark query collections.
"""
from .base import BenchmarkQueryCollection
from .uk_price_paid import UKPricePaidQueries
from .custom import CustomQueries

__all__ = [
    'BenchmarkQueryCollection',
    'UKPricePaidQueries',
    'CustomQueries'
]
