"""Index catalog and cumulative-return rebasing."""

from typing import Dict, List, NamedTuple, Sequence

from quote_engine.services.data.types import HistoryPoint, IndexPoint, IndexSeries


class IndexInfo(NamedTuple):
    symbol: str
    name: str


# Dashboard key -> proxy ETF
INDEX_CATALOG: Dict[str, IndexInfo] = {
    "msci_world": IndexInfo("URTH", "MSCI World"),
    "sp500": IndexInfo("SPY", "S&P 500"),
    "eurostoxx50": IndexInfo("FEZ", "EURO STOXX 50"),
    "dax": IndexInfo("EWG", "DAX"),
    "nasdaq100": IndexInfo("QQQ", "NASDAQ 100"),
    "msci_em": IndexInfo("EEM", "MSCI Emerging Markets"),
}


def lookup(requested: str) -> IndexInfo:
    """
    Resolve a catalog key or a raw ticker to (ticker, display name).

    Unknown tickers are passed through with their own name.
    """
    key = requested.strip()
    if key.lower() in INDEX_CATALOG:
        return INDEX_CATALOG[key.lower()]
    for info in INDEX_CATALOG.values():
        if info.symbol == key.upper():
            return info
    return IndexInfo(key, key)


def to_index_series(symbol: str, name: str, points: Sequence[HistoryPoint]) -> IndexSeries:
    """
    Re-base a history to cumulative percent return from its first close.

    Args:
        symbol: Ticker the history belongs to
        name: Display name
        points: Ascending history points

    Returns:
        IndexSeries whose first point has return_pct == 0.0

    Raises:
        ValueError: If points is empty or the base close is 0
    """
    if not points:
        raise ValueError(f"no data points for {symbol}")
    base = points[0].close
    if not base:
        raise ValueError(f"zero base close for {symbol}")

    series: List[IndexPoint] = [IndexPoint(date=points[0].date, close=base, return_pct=0.0)]
    for point in points[1:]:
        series.append(IndexPoint(
            date=point.date,
            close=point.close,
            return_pct=((point.close - base) / base) * 100
        ))

    return IndexSeries(symbol=symbol, name=name, points=tuple(series))
