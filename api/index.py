"""
Serverless entry point for the Ticket Manager API
"""
import os

# Set environment variables for serverless
os.environ.setdefault("ENVIRONMENT", "production")
os.environ.setdefault("UPLOAD_DIR", "/tmp/UploadedFiles")

from mangum import Mangum

from ticket_manager.main import app

# Lambda handler for the ASGI app; lifespan runs so the ticket manager starts
handler = Mangum(app, lifespan="auto")
