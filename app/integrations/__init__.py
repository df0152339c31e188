"""app.integrations: gateways to systems the workflow engine writes into.

Services never touch these stores directly; every write goes through a
gateway so the owning transaction decides when it is committed.

Current gateways:
  calendar_gateway: project content-calendar entries for scheduled episodes
"""
