#!/usr/bin/env python3
"""
Simple script to run the Wooacry bridge server
"""

import uvicorn

from wooacry_bridge.config import get_settings

if __name__ == "__main__":
    settings = get_settings()

    print("Starting Wooacry bridge...")
    print(f"Server will be available at: http://{settings.HOST}:{settings.PORT}")
    print(f"API Documentation: http://{settings.HOST}:{settings.PORT}/docs")
    print(f"Debug mode: {settings.DEBUG}")
    print("-" * 50)

    uvicorn.run(
        "wooacry_bridge.main:app_factory",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info" if not settings.DEBUG else "debug"
    )
