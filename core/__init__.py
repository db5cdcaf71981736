"""Core (UI-agnostic) payables dashboard logic.

This package contains:
- CSV fetch and parsing (requests/file -> pandas -> canonical records)
- text normalization, header aliases and the row normalizer
- submission grouping and filter normalization
- page compute functions (JSON-serializable payloads)
- the drill-down navigator
- chart helpers (Altair -> Vega-Lite spec dict) and CSV export
"""
