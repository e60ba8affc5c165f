"""
risk — flood-risk tiers and alert ranking.

Sub-modules:
    classifier      — safe / alert / critical + 0–100 preparedness score
    alert_selector  — which wards deserve an alert, in what order
    notices         — issued notices with expiry and dismissal
"""
