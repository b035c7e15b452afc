# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/vehosts_runner

from mcp.server.fastmcp import FastMCP
from mcp.types import TextContent

from vehosts_runner.service import ProjectServiceAsync

# Initialize service logic
service = ProjectServiceAsync()

# Initialize MCP Server
mcp = FastMCP("vehosts-runner")


@mcp.tool()  # type: ignore[misc]
async def run_project(project_id: str, owner_key: str, project_slug: str) -> list[TextContent]:
    """
    Run a hosted project's main file.
    Returns stdout, stderr and the exit code.
    """
    try:
        result = await service.run_project(project_id, owner_key, project_slug)
    except Exception as e:
        return [TextContent(type="text", text=f"Error running project: {e!s}")]

    output: list[TextContent] = []

    if result.output:
        output.append(TextContent(type="text", text=f"STDOUT:\n{result.output}"))

    if result.error:
        output.append(TextContent(type="text", text=f"STDERR:\n{result.error}"))

    output.append(TextContent(type="text", text=f"Exit Code: {result.exit_code}"))

    return output


@mcp.tool()  # type: ignore[misc]
async def preview_project(project_id: str, owner_key: str) -> str:
    """
    Assemble the preview HTML document of a running project.
    """
    try:
        document = await service.preview_project(project_id, owner_key)
    except Exception as e:
        return f"Error building preview: {e!s}"
    return document.html


@mcp.tool()  # type: ignore[misc]
async def list_logs(project_id: str, limit: int = 100) -> list[str]:
    """
    List the newest console log lines of a project.
    """
    try:
        records = await service.list_logs(project_id, limit)
    except Exception as e:
        return [f"Error listing logs: {e!s}"]
    return [f"[{record.log_type.value}] {record.message}" for record in records]


def main() -> None:
    """Entry point for the MCP server."""
    mcp.run()


if __name__ == "__main__":  # pragma: no cover
    main()
