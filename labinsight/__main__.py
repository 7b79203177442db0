import argparse
import asyncio
import json
import sys
from pathlib import Path

from labinsight.schemas.analysis import PatientContext
from labinsight.services.orchestrator import build_orchestrator
from labinsight.settings import load_settings
from labinsight.utils.exceptions import AnalysisUnavailable, InvalidDocumentFormat, error_code
from labinsight.utils.log import configure_logging


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="labinsight", description="Analyze a PDF health report.")
    parser.add_argument("report", type=Path, help="path to the PDF report")
    parser.add_argument("--name", required=True)
    parser.add_argument("--age", type=int, required=True)
    parser.add_argument("--gender", required=True, choices=["male", "female", "other"])
    parser.add_argument("--phone", default="")
    parser.add_argument("--pretty", action="store_true", help="indent the JSON output")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    settings = load_settings()
    logger = configure_logging(settings.log_level)

    context = PatientContext(name=args.name, age=args.age, gender=args.gender, phone_number=args.phone)
    data = args.report.read_bytes()
    orchestrator = build_orchestrator(settings)
    try:
        report = asyncio.run(orchestrator.analyze(data, context))
    except InvalidDocumentFormat as exc:
        logger.error({"function": "main", "code": error_code(exc)})
        print(json.dumps(exc.to_dict()), file=sys.stderr)
        return 2
    except AnalysisUnavailable as exc:
        logger.error({"function": "main", "code": error_code(exc)}, exc_info=exc)
        print(json.dumps(exc.to_dict()), file=sys.stderr)
        return 1

    logger.info({"function": "main", "outcome": report.outcome.value,
                 "fallback": report.outcome.used_fallback, "reason": report.fallback_reason})
    print(json.dumps(report.result.to_payload(), indent=2 if args.pretty else None, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
