"""
Energy Allocation API
=====================

Settlement REST API service

Endpoints:
- GET  /health                      - service status
- POST /api/v1/settlements/run      - settle one month
- GET  /api/v1/settlements/{month}  - stored record set
- POST /api/v1/allocations/edit     - edit one allocation
"""

__version__ = "1.0.0"
