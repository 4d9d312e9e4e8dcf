from __future__ import annotations

import argparse
import logging
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from colorama import just_fix_windows_console

from .compare import compare_results, write_compare_output
from .config import load_probe_config
from .console import Console
from .errors import ConfigurationError
from .executor import HttpExecutor
from .findings import SEVERITY_FAIL, SEVERITY_WARN, severity_rank
from .jsonl import writing
from .junit import write_junit_report
from .probes import PROBES, run_probes
from .runner import run_suite
from .session import Session
from .sink import FORMATS, FORMAT_JSONL, ResultSink
from .summarize import summarize_results, write_summary
from .template import TemplateOptions, render_probe_config_template, render_tests_template
from .validate import validate_tests


def _version_str() -> str:
    try:
        return version("baseline-probe")
    except PackageNotFoundError:
        return "0.0.0+unknown"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="baseline-probe")
    parser.add_argument("--version", action="version", version=_version_str())
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")

    sub = parser.add_subparsers(dest="cmd", required=True)
    p_run = sub.add_parser("run", help="Run declarative baseline tests against an API")
    p_run.add_argument("--tests", required=True, help="Path to the test-case document")
    p_run.add_argument(
        "--out",
        default="baseline_results.jsonl",
        help="Results path, or '-' for stdout (default: baseline_results.jsonl)",
    )
    p_run.add_argument("--format", choices=FORMATS, default=FORMAT_JSONL)
    p_run.add_argument("--base-url", help="Override base_url from the document")
    p_run.add_argument(
        "--login-endpoint", help="Endpoint whose 200 response provides the token (default: /login)"
    )
    p_run.add_argument("--token-field", help="JSON field holding the token (default: token)")
    p_run.add_argument("--timeout", type=float, help="Per-request timeout in seconds (default: 10)")
    p_run.add_argument("--proxy", help="Proxy URL (e.g. http://127.0.0.1:8080)")
    p_run.add_argument(
        "--insecure",
        action="store_true",
        help="Disable TLS certificate verification (useful for local/self-signed targets)",
    )
    p_run.add_argument(
        "--follow-redirects",
        action="store_true",
        help="Follow HTTP redirects (default: disabled, so 3xx statuses can be asserted)",
    )
    p_run.add_argument(
        "--only-name",
        action="append",
        help="Run only tests with this name (repeatable)",
    )
    p_run.add_argument(
        "--fail-on-mismatch",
        action="store_true",
        help="Exit 2 if any test failed (CI mode)",
    )
    p_run.set_defaults(func=_run)

    p_probe = sub.add_parser("probe", help="Run scripted security/robustness probes")
    p_probe.add_argument("--config", help="Path to a YAML/JSON probe config")
    p_probe.add_argument("--base-url", help="Override base_url from the config")
    p_probe.add_argument("--email", help="Account email for login/register probes")
    p_probe.add_argument("--password", help="Account password for login/register probes")
    p_probe.add_argument(
        "--only",
        action="append",
        choices=list(PROBES),
        help="Run only this probe (repeatable)",
    )
    p_probe.add_argument("--burst-count", type=int, help="Requests per rate-limit burst")
    p_probe.add_argument(
        "--burst-delay", type=float, help="Seconds between rate-limit burst requests"
    )
    p_probe.add_argument("--timeout", type=float, help="Per-request timeout in seconds")
    p_probe.add_argument(
        "--insecure",
        action="store_true",
        help="Disable TLS certificate verification",
    )
    p_probe.add_argument("--out", help="Write findings to this path, or '-' for stdout")
    p_probe.add_argument("--format", choices=FORMATS, default=FORMAT_JSONL)
    p_probe.add_argument(
        "--fail-on",
        choices=["never", SEVERITY_WARN, SEVERITY_FAIL],
        default="never",
        help="Exit 2 if any finding is at least this severe (default: never)",
    )
    p_probe.set_defaults(func=_probe)

    p_validate = sub.add_parser(
        "validate", help="Validate a test-case document without running requests"
    )
    p_validate.add_argument("--tests", required=True, help="Path to the test-case document")
    p_validate.add_argument(
        "--require-env",
        action="store_true",
        help="Fail if any $VARS remain unexpanded after env substitution",
    )
    p_validate.set_defaults(func=_validate)

    p_init = sub.add_parser("init", help="Write a sample test-case document or probe config")
    p_init.add_argument(
        "--kind",
        choices=["tests", "probes"],
        default="tests",
        help="What to write (default: tests)",
    )
    p_init.add_argument("--out", help="Path to write, or '-' for stdout")
    p_init.add_argument(
        "--base-url", default="https://example.test", help="Base URL for target service"
    )
    p_init.add_argument("--login-endpoint", default="/login")
    p_init.add_argument(
        "--force",
        action="store_true",
        help="Overwrite output file if it already exists",
    )
    p_init.set_defaults(func=_init)

    p_summarize = sub.add_parser("summarize", help="Summarize a results file")
    p_summarize.add_argument(
        "--in", dest="in_path", required=True, help="Input results path, or '-' for stdin"
    )
    p_summarize.add_argument(
        "--out", dest="out_path", default="-", help="Output path (default: stdout)"
    )
    p_summarize.add_argument("--json", action="store_true", help="Write machine-readable JSON")
    p_summarize.set_defaults(func=_summarize)

    p_junit = sub.add_parser("junit", help="Write a JUnit XML report from a results file")
    p_junit.add_argument(
        "--in", dest="in_path", required=True, help="Input results path, or '-' for stdin"
    )
    p_junit.add_argument(
        "--out", dest="out_path", default="-", help="Output path (default: stdout)"
    )
    p_junit.add_argument("--suite-name", default="baseline")
    p_junit.set_defaults(func=_junit)

    p_compare = sub.add_parser(
        "compare", help="Compare baseline vs current results (regression mode)"
    )
    p_compare.add_argument("--baseline", required=True, help="Baseline results path")
    p_compare.add_argument("--current", required=True, help="Current results path, or '-'")
    p_compare.add_argument(
        "--out", default="-", help="Write summary to this path (default: stdout)"
    )
    p_compare.add_argument(
        "--json", action="store_true", help="Write machine-readable JSON summary"
    )
    p_compare.add_argument(
        "--fail-on-new",
        action="store_true",
        help="Exit non-zero if tests fail now that passed in the baseline",
    )
    p_compare.set_defaults(func=_compare)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[%(levelname)s] %(message)s",
    )
    just_fix_windows_console()
    return int(args.func(args))


def _console(args: argparse.Namespace, *, out: str | None) -> Console:
    # Keep stdout clean for machine-readable output.
    stream = sys.stderr if out == "-" else sys.stdout
    return Console(stream, color=False if args.no_color else None)


def _run(args: argparse.Namespace) -> int:
    return run_suite(
        Path(args.tests),
        Path(args.out),
        base_url=args.base_url,
        login_endpoint=args.login_endpoint,
        token_field=args.token_field,
        timeout=args.timeout,
        verify_tls=(False if bool(args.insecure) else None),
        proxy=args.proxy,
        follow_redirects=(True if bool(args.follow_redirects) else None),
        only_names=(list(args.only_name) if args.only_name else None),
        fail_on_mismatch=bool(args.fail_on_mismatch),
        fmt=str(args.format),
        console=_console(args, out=str(args.out)),
    )


def _probe(args: argparse.Namespace) -> int:
    config = load_probe_config(Path(args.config) if args.config else None)
    config = config.with_overrides(
        base_url=args.base_url,
        email=args.email,
        password=args.password,
        timeout=args.timeout,
        verify_tls=(False if bool(args.insecure) else None),
    )
    config = config.with_bursts(count=args.burst_count, delay_s=args.burst_delay)
    if not config.base_url:
        raise ConfigurationError("missing base_url (set it in the config or pass --base-url)")

    console = _console(args, out=args.out)
    sink = ResultSink(Path(args.out), fmt=str(args.format)) if args.out else None
    executor = HttpExecutor(config.base_url, timeout=config.timeout, verify_tls=config.verify_tls)
    try:
        findings = run_probes(
            executor,
            Session(),
            config,
            only=args.only,
            console=console,
            sink=sink,
        )
    finally:
        executor.close()
    if sink is not None:
        sink.flush()

    counts = {sev: sum(1 for f in findings if f.severity == sev) for sev in ("ok", "warn", "fail")}
    console.section("DONE")
    console.line(f"ok: {counts['ok']}, warn: {counts['warn']}, fail: {counts['fail']}")
    console.line("Review WARN/FAIL above.")

    if args.fail_on != "never":
        threshold = severity_rank(args.fail_on)
        if any(severity_rank(f.severity) >= threshold for f in findings):
            return 2
    return 0


def _validate(args: argparse.Namespace) -> int:
    return validate_tests(Path(args.tests), require_env=bool(args.require_env))


def _init(args: argparse.Namespace) -> int:
    opts = TemplateOptions(base_url=str(args.base_url), login_endpoint=str(args.login_endpoint))
    if args.kind == "probes":
        content = render_probe_config_template(opts)
        default_out = "probes.yml"
    else:
        content = render_tests_template(opts)
        default_out = "baseline_tests.json"
    out_path = Path(args.out or default_out)

    if str(out_path) != "-" and out_path.exists() and not bool(args.force):
        raise SystemExit(f"refusing to overwrite existing file: {out_path} (use --force)")

    with writing(out_path) as out:
        out.write(content)
    return 0


def _summarize(args: argparse.Namespace) -> int:
    summary = summarize_results(Path(args.in_path))
    write_summary(summary, Path(args.out_path), as_json=bool(args.json))
    return 0


def _junit(args: argparse.Namespace) -> int:
    write_junit_report(Path(args.in_path), Path(args.out_path), suite_name=str(args.suite_name))
    return 0


def _compare(args: argparse.Namespace) -> int:
    summary = compare_results(Path(args.baseline), Path(args.current))
    write_compare_output(summary, Path(args.out), as_json=bool(args.json))
    return 2 if (bool(args.fail_on_new) and summary.new_failures) else 0


if __name__ == "__main__":
    raise SystemExit(main())
