#!/usr/bin/env python
"""
Energy Allocation API Runner
============================

Starts the settlement API, or settles one month from a JSON file.

Usage:
------
# Development mode (hot reload)
python run_api.py --dev

# Production mode
python run_api.py --port 8080

# Offline run: JSON body of POST /api/v1/settlements/run
python run_api.py --settle request.json --report balance
"""

import argparse
import json
import os
import sys


def settle_file(path: str, report: str) -> int:
    """Settle one month from a request file and print the chosen report"""
    from api.schemas import SettlementRunRequest
    from api.service import SettlementService
    from src.energy_allocation.reporting import (
        period_balance_frame,
        residual_frame,
        result_frame,
    )
    from src.energy_allocation.validators.errors import ValidationError

    with open(path, encoding='utf-8') as f:
        request = SettlementRunRequest.model_validate(json.load(f))

    try:
        result = SettlementService().run_settlement(request)
    except ValidationError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 1

    if report == 'json':
        print(json.dumps(result.to_dict(), indent=2))
    elif report == 'records':
        print(result_frame(result).to_string(index=False))
    elif report == 'residue':
        print(residual_frame(result).to_string(index=False))
    else:
        print(period_balance_frame(result).to_string(index=False))
    return 0


def main():
    parser = argparse.ArgumentParser(description='Energy Allocation API Server')
    parser.add_argument('--host', type=str, default='0.0.0.0', help='Host address')
    parser.add_argument('--port', type=int, default=8000, help='Port number')
    parser.add_argument('--dev', action='store_true', help='Development mode with hot reload')
    parser.add_argument('--workers', type=int, default=1, help='Number of workers')
    parser.add_argument('--log-format', choices=['json', 'text'], default=None, help='Log format')
    parser.add_argument('--strict-shareholding', action='store_true',
                        help='Reject producers without a shareholding entry')
    parser.add_argument('--settle', metavar='FILE', default=None,
                        help='Settle a month from a JSON request file instead of serving')
    parser.add_argument('--report', choices=['balance', 'records', 'residue', 'json'], default='balance',
                        help='Output of --settle')

    args = parser.parse_args()

    os.environ.setdefault('HOST', args.host)
    os.environ.setdefault('PORT', str(args.port))
    if args.log_format:
        os.environ['LOG_FORMAT'] = args.log_format
    if args.strict_shareholding:
        os.environ['STRICT_SHAREHOLDING'] = 'true'

    if args.dev:
        os.environ['DEBUG'] = 'true'
        os.environ['RELOAD'] = 'true'
        os.environ['LOG_LEVEL'] = 'DEBUG'

    if args.settle:
        sys.exit(settle_file(args.settle, args.report))

    import uvicorn

    print("=" * 60)
    print("Energy Allocation API")
    print("=" * 60)
    print(f"Mode: {'Development' if args.dev else 'Production'}")
    print(f"Host: {args.host}")
    print(f"Port: {args.port}")
    print(f"Workers: {args.workers}")
    print("=" * 60)
    print(f"API Documentation: http://{args.host}:{args.port}/docs")
    print(f"Health Check: http://{args.host}:{args.port}/health")
    print("=" * 60)

    uvicorn.run(
        "api.main:app",
        host=args.host,
        port=args.port,
        reload=args.dev,
        workers=1 if args.dev else args.workers,
        log_level="debug" if args.dev else "info"
    )


if __name__ == '__main__':
    main()
