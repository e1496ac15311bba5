"""
Chani — call-analytics dashboard

Analytics backend for the call transcriptions stored in Supabase: reads the
transcriptions table, follows its realtime change feed, and turns the rows
into dashboard-ready metrics, series, and a sortable/searchable calls table.

To connect to Streamlit:
    Call dashboard.get_dashboard_overview(calls) for the metric cards and
    chart series, and calls_table.get_calls_view(calls, sort, search) for
    the table. app.py is the reference front end.

To run without a backend:
    simulator.InMemoryTranscriptionStore implements the same fetch and
    change-feed interface as loaders.TranscriptionStore over synthetic rows.

To add a sortable column:
    Add a member to calls_table.SortField and map it to an accessor in
    calls_table.SORT_ACCESSORS, then add its header to
    config.CALL_COLUMN_LABELS.
"""
