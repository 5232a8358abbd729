"""
catalog.py - Preloaded instrument listings

Indian large caps followed by global tech and consumer names, with their
opening prices.
"""

from __future__ import annotations
from decimal import Decimal
from typing import List, Optional, Tuple

import numpy as np

from .core import Instrument
from .simulator import PriceSimulator, SimulatorConfig


# (name, symbol, opening price)
DEFAULT_LISTINGS: List[Tuple[str, str, str]] = [
    ("Reliance Industries", "RELI", "2850.00"),
    ("TCS", "TCS", "3450.00"),
    ("Infosys", "INFY", "1450.50"),
    ("HCL Technologies", "HCLT", "1120.40"),
    ("Wipro", "WIPRO", "490.20"),
    ("Maruti Suzuki", "MARUTI", "10725.50"),
    ("Tata Motors", "TATAMOT", "925.10"),
    ("HDFC Bank", "HDFCBANK", "1590.45"),
    ("ICICI Bank", "ICICIBANK", "1045.35"),
    ("State Bank of India", "SBIN", "845.25"),
    ("Bajaj Finance", "BAJFIN", "6980.75"),
    ("Asian Paints", "ASIANPNT", "3200.10"),
    ("ITC Ltd", "ITC", "470.35"),
    ("Adani Enterprises", "ADANIENT", "2325.60"),
    ("Larsen & Toubro", "LT", "3580.90"),
    ("Bharti Airtel", "AIRTEL", "1030.25"),
    ("Sun Pharma", "SUNPHARMA", "1455.15"),
    ("Titan Company", "TITAN", "3450.80"),
    ("Nestle India", "NESTLE", "25900.00"),
    ("Hindustan Unilever", "HUL", "2530.25"),
    ("PowerGrid Corp", "POWERGRID", "310.10"),
    ("ONGC", "ONGC", "265.45"),
    ("Coal India", "COALIND", "410.60"),
    ("Adani Green", "ADANIGRN", "1210.75"),
    ("JSW Steel", "JSWSTL", "930.25"),
    ("NTPC", "NTPC", "310.40"),
    ("Apple Inc.", "AAPL", "150.00"),
    ("Microsoft Corp", "MSFT", "340.00"),
    ("Amazon", "AMZN", "130.00"),
    ("Tesla Motors", "TSLA", "220.00"),
    ("Google (Alphabet)", "GOOG", "125.00"),
    ("Meta Platforms", "META", "250.00"),
    ("NVIDIA Corp", "NVDA", "900.00"),
    ("Adobe Inc.", "ADBE", "510.00"),
    ("Intel Corp", "INTC", "34.00"),
    ("Oracle", "ORCL", "108.00"),
    ("Coca-Cola", "KO", "58.00"),
    ("PepsiCo", "PEP", "175.00"),
    ("Toyota Motor", "TM", "190.00"),
    ("Sony Group", "SONY", "88.00"),
]


def default_instruments() -> List[Instrument]:
    """Fresh Instrument values for every default listing."""
    return [Instrument(symbol, name, Decimal(price)) for name, symbol, price in DEFAULT_LISTINGS]


def create_default_simulator(
    config: Optional[SimulatorConfig] = None,
    rng: Optional[np.random.Generator] = None,
) -> PriceSimulator:
    """Simulator with every default listing registered, in catalog order."""
    simulator = PriceSimulator(config, rng=rng)
    for instrument in default_instruments():
        simulator.register(instrument)
    return simulator
