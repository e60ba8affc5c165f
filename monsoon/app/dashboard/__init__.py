"""
dashboard — what the UI renders.

Sub-modules:
    view_model  — immutable DashboardView built once per refresh
    export      — JSON report of wards + incidents
"""
