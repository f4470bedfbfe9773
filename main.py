import argparse

from vmcontrol.server import mcp, settings


def main() -> None:
    parser = argparse.ArgumentParser(description="VM remote control MCP server")
    parser.add_argument(
        "--transport",
        choices=("stdio", "streamable-http"),
        default="streamable-http",
        help=f"MCP transport (HTTP listens on port {settings.mcp_port})",
    )
    args = parser.parse_args()
    mcp.run(transport=args.transport)


if __name__ == "__main__":
    main()
