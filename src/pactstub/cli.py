"""
pactstub CLI

Command-line interface for the pact stub server.

Examples:
    # Serve one pact file
    pactstub --file consumer-provider.json --port 8080

    # Serve every pact in a directory with automatic CORS handling
    pactstub --dir pacts --cors

    # Only serve interactions for a provider state, overridable per request
    pactstub -f pact.json -s 'user exists' --provider-state-header-name X-Provider-State
"""

import argparse
import logging
import sys
from typing import List, Optional

from .common import PactLoader, get_pact_broker_token_from_env, is_http_url
from .errors import InvalidProviderStateFilter, PactLoadError
from .mock import create_stub_server


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog='pactstub',
        description="Pact Stub Server - serves the responses recorded in pact files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve one pact file on port 8080
  %(prog)s --file consumer-provider.json --port 8080

  # Serve all pacts from a directory, answering CORS preflight requests
  %(prog)s --dir pacts --cors

  # Fetch a pact from a broker (token read from PACT_BROKER_TOKEN)
  %(prog)s --url https://broker.example.com/pacts/provider/p/consumer/c/latest
        """
    )

    sources = parser.add_argument_group('pact sources')
    sources.add_argument('-f', '--file', action='append', default=[], dest='files',
                         help='Pact file to load (can be repeated)')
    sources.add_argument('-d', '--dir', action='append', default=[], dest='dirs',
                         help='Directory of pact files to load (can be repeated)')
    sources.add_argument('-u', '--url', action='append', default=[], dest='urls',
                         help='URL of a pact file to fetch (can be repeated)')
    sources.add_argument('-e', '--ext', help='Extra file extension to load from directories (default: json only)')
    sources.add_argument('--insecure-tls', action='store_true', help='Disable TLS certificate verification for URLs')
    sources.add_argument('--user', help="Basic auth credentials for URLs, as 'username:password'")

    parser.add_argument('--host', default='127.0.0.1', help='Host to bind (default: 127.0.0.1)')
    parser.add_argument('-p', '--port', type=int, default=8080, help='Port to bind (default: 8080)')
    parser.add_argument('-o', '--cors', action='store_true',
                        help='Automatically respond to OPTIONS requests and add CORS headers to 404 responses')
    parser.add_argument('-s', '--provider-state',
                        help='Only serve interactions with a provider state matching this regex')
    parser.add_argument('--provider-state-header-name',
                        help='Request header whose value overrides the provider state regex for that request')
    parser.add_argument('--print-mismatch-bodies', action='store_true',
                        help='Include full request bodies when logging body mismatches')
    parser.add_argument('--log-level', default='info', choices=['debug', 'info', 'warning', 'error'],
                        help='Log level (default: info)')

    return parser


def cmd_serve(args: argparse.Namespace):
    """
    Load pacts and start the stub server.

    Args:
        args: Parsed command-line arguments
    """
    print(f"🎭 Pact Stub Server")

    files = [f for f in args.files if not is_http_url(f)]
    urls = [f for f in args.files if is_http_url(f)] + list(args.urls)

    if not (files or args.dirs or urls):
        print("❌ No pact sources given. Use --file, --dir or --url")
        sys.exit(1)

    # Token from environment only (SECURITY: never accept tokens via CLI)
    token = get_pact_broker_token_from_env()
    if urls and token:
        print(f"🔑 Using bearer token from PACT_BROKER_TOKEN")

    loader = PactLoader(
        extension=args.ext,
        insecure_tls=args.insecure_tls,
        user=args.user,
        token=token
    )

    try:
        server = create_stub_server(
            files=files,
            dirs=args.dirs,
            urls=urls,
            host=args.host,
            port=args.port,
            auto_cors=args.cors,
            provider_state=args.provider_state,
            provider_state_header_name=args.provider_state_header_name,
            print_mismatch_bodies=args.print_mismatch_bodies,
            log_level=args.log_level,
            loader=loader
        )
    except (PactLoadError, InvalidProviderStateFilter) as e:
        print(f"❌ Failed to create stub server: {e}")
        sys.exit(1)

    try:
        server.start()
    except KeyboardInterrupt:
        print("\n\n👋 Stub server stopped")


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format='%(asctime)s %(levelname)-7s %(name)s: %(message)s'
    )

    cmd_serve(args)


if __name__ == '__main__':
    main()
