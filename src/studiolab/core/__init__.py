"""Core functionality for Studio Prompt Lab.

Architecture Overview
---------------------
The core module follows a layered architecture:

1. **Configuration Layer** (config.py, constants.py):
   - Environment-based configuration using Pydantic Settings
   - All settings prefixed with STUDIOLAB_ in .env files
   - Fixed option lists (models, aspect ratios, sizes, tags, categories)

2. **Persistence Layer** (database.py, input_sets.py, templates.py, runs.py):
   - SQLite database with cascading foreign keys
   - One store class per aggregate, returning plain dictionaries

3. **Integration Layer** (image_client.py, catalog.py, storage.py):
   - Gemini image generation via google-genai
   - Product catalog access via httpx
   - Upload/output image files on disk, validated with Pillow

4. **Pipeline Layer** (executor.py):
   - Sequential prompt-chain execution with forward-fed images

5. **Reporting** (export.py, dashboard.py):
   - JSON/CSV exports and dashboard aggregates

Usage Example
-------------
    from studiolab.core import config, Database, RunStore, RunExecutor

    database = Database(config.database_path)
    runs = RunStore(database)
    executor = RunExecutor(runs, storage, image_client)
    summary = executor.execute(run_id)
"""

from studiolab.core.config import StudioConfig, config
from studiolab.core.database import Database
from studiolab.core.executor import RunAlreadyRunningError, RunExecutor
from studiolab.core.input_sets import InputSetStore
from studiolab.core.runs import RunStore
from studiolab.core.templates import TemplateStore

__all__ = [
    "Database",
    "InputSetStore",
    "RunAlreadyRunningError",
    "RunExecutor",
    "RunStore",
    "StudioConfig",
    "TemplateStore",
    "config",
]
