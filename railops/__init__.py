"""Core (UI-agnostic) railway operations logic.

This package contains:
- record store (loading operations + detentions, CSV-backed pandas frames)
- Excel import/validation (XLSX -> pandas)
- period resolution and the comparative aggregation engine
- detention duration and pattern scoring
- presentation/export adapters (table rows, Vega-Lite specs, CSV/JSON/XLSX/PDF)
"""
