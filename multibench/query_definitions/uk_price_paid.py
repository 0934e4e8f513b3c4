#!/usr/bin/env python3
"""
Benchmark queries for the UK Land Registry Price Paid dataset (~30M rows).

The PostgreSQL text is shared by the HEAP table and the pg_clickhouse
foreign table; the FDW pushes what it can down to ClickHouse.
"""
from typing import List, Dict, Any

from .base import BenchmarkQueryCollection


PRICE_BY_YEAR_TYPE_PG = """
SELECT
    EXTRACT(YEAR FROM date) as year,
    type,
    COUNT(*) as transactions,
    ROUND(AVG(price)) as avg_price,
    ROUND(PERCENTILE_CONT(0.5) WITHIN GROUP (ORDER BY price)) as median_price
FROM {table}
GROUP BY EXTRACT(YEAR FROM date), type
ORDER BY year, type
"""

# type is an Enum8 in ClickHouse; order by its name to match PostgreSQL.
# Averages go through Decimal so round() matches PostgreSQL half-away-from-zero rounding.
PRICE_BY_YEAR_TYPE_CH = """
SELECT
    toYear(date) AS year,
    type,
    count() AS transactions,
    round(toDecimal64(avg(price), 4)) AS avg_price,
    round(quantileTDigest(0.5)(price)) AS median_price
FROM {table}
GROUP BY year, type
ORDER BY year, toString(type)
"""

RECENT_LONDON_SALES = """
SELECT
    date,
    postcode1,
    postcode2,
    street,
    type,
    price
FROM {table}
WHERE town = 'LONDON'
  AND date >= '2024-01-01'
ORDER BY date DESC, price DESC
LIMIT 100
"""

# Byte-order collation so county order matches ClickHouse
COUNTY_TRENDS_PG = """
SELECT
    county,
    EXTRACT(YEAR FROM date) as year,
    COUNT(*) as sales_count,
    ROUND(AVG(price)) as avg_price,
    MIN(price) as min_price,
    MAX(price) as max_price
FROM {table}
WHERE date BETWEEN '2020-01-01' AND '2024-12-31'
GROUP BY county, EXTRACT(YEAR FROM date)
ORDER BY county COLLATE "C", year
"""

COUNTY_TRENDS_CEDAR = """
SELECT
    county,
    EXTRACT(YEAR FROM date) as year,
    COUNT(*) as sales_count,
    ROUND(AVG(price)) as avg_price,
    MIN(price) as min_price,
    MAX(price) as max_price
FROM {table}
WHERE date BETWEEN '2020-01-01' AND '2024-12-31'
GROUP BY county, EXTRACT(YEAR FROM date)
ORDER BY county, year
"""

COUNTY_TRENDS_CH = """
SELECT
    county,
    toYear(date) AS year,
    count() AS sales_count,
    round(toDecimal64(avg(price), 4)) AS avg_price,
    min(price) AS min_price,
    max(price) AS max_price
FROM {table}
WHERE date BETWEEN '2020-01-01' AND '2024-12-31'
GROUP BY county, year
ORDER BY county, year
"""

POSTCODE_ANALYSIS_PG = """
SELECT
    postcode1,
    COUNT(*) as transaction_count,
    ROUND(AVG(price)) as avg_price
FROM {table}
WHERE date >= '2023-01-01'
GROUP BY postcode1
HAVING COUNT(*) > 100
ORDER BY avg_price DESC
LIMIT 50
"""

POSTCODE_ANALYSIS_CH = """
SELECT
    postcode1,
    count() AS transaction_count,
    round(toDecimal64(avg(price), 4)) AS avg_price
FROM {table}
WHERE date >= '2023-01-01'
GROUP BY postcode1
HAVING count() > 100
ORDER BY avg_price DESC
LIMIT 50
"""

MONTHLY_VOLUME_RANK_PG = """
SELECT
    DATE_TRUNC('month', date) AS month,
    COUNT(*) AS sales_count,
    RANK() OVER (ORDER BY COUNT(*) DESC) AS volume_rank
FROM {table}
WHERE date >= '2024-01-01' AND date < '2025-01-01'
GROUP BY DATE_TRUNC('month', date)
ORDER BY month
"""

MONTHLY_VOLUME_RANK_CH = """
SELECT
    toYYYYMM(date) AS month,
    count() AS sales_count,
    rank() OVER (ORDER BY count() DESC) AS volume_rank
FROM {table}
WHERE date >= '2024-01-01' AND date < '2025-01-01'
GROUP BY month
ORDER BY month
"""


class UKPricePaidQueries(BenchmarkQueryCollection):
    """Analytical queries over the UK Price Paid table."""

    @property
    def name(self) -> str:
        return "uk_price_paid"

    @property
    def description(self) -> str:
        return "Aggregations, filtered scans and percentiles over UK Price Paid data"

    def get_queries(self) -> List[Dict[str, Any]]:
        """Return predefined benchmark queries for the UK Price Paid table."""
        return [
            {
                "id": "q1_price_by_year_type",
                "description": "Average and median price by year and property type",
                "variants": {
                    "postgres": {"sql": PRICE_BY_YEAR_TYPE_PG, "features": ["EXTRACT", "PERCENTILE_CONT"]},
                    "cedar": {"sql": PRICE_BY_YEAR_TYPE_PG, "features": ["EXTRACT", "PERCENTILE_CONT"]},
                    "clickhouse": {"sql": PRICE_BY_YEAR_TYPE_CH, "features": ["toYear", "quantileTDigest"]},
                },
                # median_price: t-digest estimate on ClickHouse
                "approximate_columns": [4],
            },
            {
                "id": "q2_recent_london_sales",
                "description": "Most recent expensive sales in London",
                "variants": {
                    "postgres": RECENT_LONDON_SALES,
                    "cedar": RECENT_LONDON_SALES,
                    "clickhouse": RECENT_LONDON_SALES,
                },
                # LIMIT over (date, price) ties: only the sort key is deterministic
                "compared_columns": [0, 5],
            },
            {
                "id": "q3_county_trends",
                "description": "Yearly price trends by county, 2020-2024",
                "variants": {
                    "postgres": {"sql": COUNTY_TRENDS_PG, "features": ["EXTRACT"]},
                    "cedar": {"sql": COUNTY_TRENDS_CEDAR, "features": ["EXTRACT"]},
                    "clickhouse": {"sql": COUNTY_TRENDS_CH, "features": ["toYear"]},
                },
            },
            {
                "id": "q4_postcode_analysis",
                "description": "Most expensive postcode areas since 2023",
                "variants": {
                    "postgres": POSTCODE_ANALYSIS_PG,
                    "cedar": POSTCODE_ANALYSIS_PG,
                    "clickhouse": POSTCODE_ANALYSIS_CH,
                },
                "compared_columns": [2],
            },
            {
                "id": "q5_monthly_volume_rank",
                "description": "Monthly sales volume in 2024 ranked with a window function",
                "variants": {
                    "postgres": {"sql": MONTHLY_VOLUME_RANK_PG, "features": ["DATE_TRUNC", "window_functions"]},
                    "cedar": {"sql": MONTHLY_VOLUME_RANK_PG, "features": ["DATE_TRUNC", "window_functions"]},
                    "clickhouse": {"sql": MONTHLY_VOLUME_RANK_CH, "features": ["toYYYYMM", "window_functions"]},
                },
                # month is a date in PostgreSQL and YYYYMM in ClickHouse
                "compared_columns": [1, 2],
            },
        ]
