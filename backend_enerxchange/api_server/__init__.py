"""
API server package — HTTP interface over the marketplace read model.

Serves listings, profiles, history, analytics and platform state to the front
end, and accepts contract writes that are confirmed and reconciled before the
response returns.
"""
