"""MCP server exposing the image attachment pipeline."""

from __future__ import annotations

import logging
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from .config import AttachConfig
from .pipeline import AutoAttachPipeline
from .registry import LocalAttachmentRegistry

logger = logging.getLogger("autoattach.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="autoattach")


@mcp.tool()
def attach_images(
    content: str,
    target_id: str,
    attachments_dir: str,
    module_id: str = "mcp",
) -> str:
    """Download external images in HTML content and return the rewritten HTML."""

    root = Path(attachments_dir).expanduser()
    if not root.parent.exists():
        raise FileNotFoundError(f"Attachment directory parent does not exist: {root.parent}")

    config = AttachConfig.from_env()
    pipeline = AutoAttachPipeline(config, LocalAttachmentRegistry(root))
    result = pipeline.run(content, target_id, module_id)
    for message in result.errors:
        logger.error(message)
    return result.content


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
