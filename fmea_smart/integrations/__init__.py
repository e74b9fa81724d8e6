"""fmea_smart.integrations — outbound HTTP gateway modules.

All outbound HTTP calls go through a gateway in this package, never via bare
`requests` calls in services or blueprints.

Current gateways:
  worksheet_gateway.WorksheetGateway — worksheet load/save API with local cache fallback
"""
