"""
wards — the canonical ward model and its sources.

Sub-modules:
    models      — Ward, RiskLevel, DataSource, RiskAssessment
    repository  — SQL ward store: queries, writes, statistics
    demo        — fixed 8-ward dataset used when every source fails
    synthetic   — stable fills for missing infrastructure fields
"""
