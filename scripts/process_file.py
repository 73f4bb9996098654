"""
Process one uploaded file from the command line, the same way
POST /files/{file_id}/process does.

Usage:
    uv run python scripts/process_file.py <file_id> <project_id>
"""
import argparse
import asyncio
import sys
import uuid
from pathlib import Path

# Setup path so we can import caselens
project_root = Path(__file__).parent.parent
sys.path.append(str(project_root))

from caselens.config import get_settings
from caselens.container import build_services
from caselens.logging_config import configure_logging, get_logger
from caselens.observability import configure_observability

settings = get_settings()
configure_logging(
    log_level=settings.log_level,
    json_format=settings.json_logs,
    log_file="ingestion.log"
)
configure_observability(settings)
log = get_logger(__name__)


async def main(file_id: uuid.UUID, project_id: uuid.UUID) -> int:
    services = build_services(settings)
    try:
        result = await services.processor.process(file_id, project_id)
    finally:
        await services.close()

    if result.error:
        print(f"❌ Processing failed: {result.error}")
        return 1
    print(f"✅ {result.status.value}: {result.chunks_created} chunks")
    print(f"Summary: {result.summary}")
    return 0

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Process one uploaded file")
    parser.add_argument("file_id", type=uuid.UUID)
    parser.add_argument("project_id", type=uuid.UUID)
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.file_id, args.project_id)))
