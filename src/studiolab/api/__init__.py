"""Studio Prompt Lab — FastAPI REST API layer.

This package contains the FastAPI application and the Pydantic request
models.

Modules
-------
main
    ``create_app()`` factory with all route handlers, the module-level
    ``app``, and the ``main()`` CLI entry point.
models
    Pydantic models for API request validation.
"""
