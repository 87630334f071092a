"""
HTTP API for the SDN individual search

- FastAPI application and endpoints (api.server)
- Pydantic request/response schemas (api.models)
- CORS, request logging and error handlers (api.middleware)
"""
