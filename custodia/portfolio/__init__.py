"""Portfolio views: client valuation, book composition, drift and snapshots."""

from custodia.portfolio.composition import PortfolioComposition, compute_composition
from custodia.portfolio.drift import DriftReport, compute_allocation_drift
from custodia.portfolio.overview import PortfolioOverview, portfolio_overview
from custodia.portfolio.snapshots import PortfolioSnapshot, capture_snapshots, load_snapshots
from custodia.portfolio.valuation import (
    ClientPortfolio,
    ConsolidatedPortfolio,
    consolidated_portfolio,
    get_client_portfolio,
    value_client_portfolio,
)

__all__ = [
    "ClientPortfolio",
    "ConsolidatedPortfolio",
    "DriftReport",
    "PortfolioComposition",
    "PortfolioOverview",
    "PortfolioSnapshot",
    "capture_snapshots",
    "compute_allocation_drift",
    "compute_composition",
    "consolidated_portfolio",
    "get_client_portfolio",
    "load_snapshots",
    "portfolio_overview",
    "value_client_portfolio",
]
