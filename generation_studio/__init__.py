"""
Generation Studio - Batch Generation Orchestrator
=================================================
Submits batches of AI generation requests (image edits, video animations),
tracks every request independently, and retries failures without disturbing
the rest of the gallery.

Package structure:
- api/: provider client, async gateway, response adapters and error handling
- orchestrator/: keys, result store, progress, task runner, batching and retries
- utils/: polling state machine, prompts, export naming, config and logging
"""

__version__ = "1.0.0"
