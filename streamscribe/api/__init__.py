"""
REST API for streamscribe.

Provides a FastAPI application serving:
- Health/readiness endpoints
- Batch transcription of uploaded files (/api/transcribe/file)
- Streaming transcription as NDJSON (/api/transcribe/stream)
"""
