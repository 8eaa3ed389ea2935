"""Core timeline, silence, export, and orchestration modules.

WHY: The core package contains the stable heart of the packer: the
timeline data structures, the fold that places clips on the track, the
silence writer, the export stage, and the orchestrator that ties them
together with the transcoder.

HOW: models.py defines the data structures, timeline.py the pure fold,
silence.py the zero-byte writer, exporter.py the encode fan-out, and
pipeline.py the SpriteBuilder that sequences a whole build.

RULES:
- Timeline arithmetic stays pure (timeline.py never touches files)
- Only pipeline.py creates or deletes temp files
- Manifest shapes live in audiosprite.manifests, not here
"""
