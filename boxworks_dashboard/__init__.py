"""
Boxworks — sales and production dashboard

Analytics backend for a small box-manufacturing business: orders and build
batches go in, fiscal-month KPI bundles with on target / watch / below
target statuses come out.

To swap SQLite for another database:
    Reimplement the load/insert/update functions in boxworks_dashboard.store.
    The typed records in boxworks_dashboard.records remain unchanged.

To connect to Streamlit/Dash:
    Call dashboard.get_sales_overview / get_production_overview with records
    already filtered for the viewer, and render the returned dicts.

To add a new fixed-band KPI:
    Add an entry to config.RAG_BANDS with its direction and green/amber
    limits, then classify it with kpis.classify_band.
"""
