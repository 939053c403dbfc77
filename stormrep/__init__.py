"""
stormrep package
================

Storm impact report: which storm event types are most harmful to population
health, and which have the greatest economic consequences (NOAA storm data).

- The CLI entry point is in `stormrep/cli.py`.
- Dataset loading and the cutoff filter are in `stormrep/loader.py`.
- Field cleaning (exponents, states, event types) is in `stormrep/normalize.py`.
- Group-by summaries and audits are in `stormrep/aggregate.py`.
- The DOCX report is built in `stormrep/report.py`.
"""

__version__ = '0.3.0'
