#!/usr/bin/env python3
"""CLI entry point for workflow-manifold.

Verbs:
- demo:     Run the stock nested demonstration
- run:      Drive a workflow file with one or more prompts
- validate: Check a workflow file without running it

Usage:
    manifold demo [--json-output] [--verbose]
    manifold run -W <workflow.yaml> -p <prompt> [-p <prompt> ...] [--intents <file>]
    manifold validate -W <workflow.yaml>
"""

import argparse
import asyncio
import json
import logging
import sys
import time
from typing import Optional

from config import ConfigError, EngineSettings, load_settings
from intent import HttpIntentClassifier, IntentClassifier, KeywordIntentMap, load_intent_map
from workflow import DEMO_PROMPTS, DEMO_WORKFLOW, Workflow, load_workflow
from workflow_manifold.engine import WorkflowManifold

logger = logging.getLogger(__name__)

VERBS = {
    "demo": "Run the stock nested demonstration",
    "run": "Drive a workflow file with prompts",
    "validate": "Check a workflow file",
}


def _common_parser(verb: str) -> argparse.ArgumentParser:
    """Build argument parser with common options for all verbs."""
    parser = argparse.ArgumentParser(
        prog=f'manifold {verb}',
        description=VERBS[verb],
    )
    parser.add_argument(
        '--config', '-c',
        help='Settings file (override: MANIFOLD_CONFIG env var)',
    )
    parser.add_argument(
        '--intents',
        help='YAML intent table for the keyword classifier',
    )
    parser.add_argument(
        '--classifier-url',
        help='Remote classifier endpoint (takes precedence over --intents)',
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging',
    )
    parser.add_argument(
        '--json-output',
        action='store_true',
        help='Output structured JSON to stdout (logs to stderr)',
    )
    return parser


def _add_workflow_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--workflow', '-W',
        help='Path to workflow definition (YAML or JSON)',
    )
    parser.add_argument(
        '--workflow-json',
        help='Inline workflow JSON',
    )


def _setup_logging(verbose: bool, json_output: bool, level: str = 'INFO') -> None:
    """Configure logging based on flags."""
    stream = sys.stderr if json_output else sys.stdout
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(
        '%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    ))
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if verbose else getattr(logging, level, logging.INFO))


def build_classifier(settings: EngineSettings, intents: Optional[str] = None,
                     url: Optional[str] = None) -> IntentClassifier:
    """Select the classifier: remote URL, then intent file, then stock table.

    Command-line values take precedence over settings.
    """
    url = url or settings.classifier_url
    if url:
        logger.debug(f"Using remote classifier at {url}")
        return HttpIntentClassifier(url, timeout=settings.classifier_timeout)

    intents_file = intents or settings.intents_file
    if intents_file:
        return load_intent_map(intents_file)

    return KeywordIntentMap()


def _load_settings(args) -> EngineSettings:
    return load_settings(args.config) if args.config else load_settings()


def _load_workflow(args) -> Workflow:
    if not args.workflow and not args.workflow_json:
        raise ConfigError("specify a workflow with -W/--workflow or --workflow-json")
    return load_workflow(file_path=args.workflow, json_str=args.workflow_json)


async def drive(manifold: WorkflowManifold, prompts: list[tuple[str, str]]) -> list[dict]:
    """Navigate then execute for each prompt, in order.

    Returns:
        One result dict per prompt
    """
    results = []
    for text, description in prompts:
        if description:
            logger.info(f"--- {description} ---")
        navigated, executed = await manifold.step(text)
        current = manifold.current_region
        results.append({
            'prompt': text,
            'navigated': navigated,
            'executed': executed,
            'region': current.name if current is not None else None,
        })
        logger.info(f"Current state: {json.dumps(manifold.state, default=str, sort_keys=True)}")
    return results


def _emit_json(verb: str, manifold: WorkflowManifold, results: list[dict], duration: float) -> None:
    """Emit structured JSON output."""
    output = {
        'verb': verb,
        'workflow': manifold.name,
        'success': any(r['executed'] for r in results) if results else True,
        'duration_seconds': round(duration, 2),
        'results': results,
        'state': manifold.state,
        'trace': manifold.trace.to_dict()['steps'],
    }
    print(json.dumps(output, indent=2, default=str))


def _print_results(manifold: WorkflowManifold, results: list[dict]) -> None:
    for r in results:
        nav = 'yes' if r['navigated'] else 'no'
        exe = 'yes' if r['executed'] else 'no'
        print(f"  {r['prompt']:30} navigated={nav:3} executed={exe:3} region={r['region']}")
    print(f"Final state: {json.dumps(manifold.state, default=str, sort_keys=True)}")


def _run_prompts(verb: str, workflow: Workflow, args, prompts: list[tuple[str, str]]) -> int:
    settings = _load_settings(args)
    _setup_logging(args.verbose, args.json_output, settings.log_level)
    classifier = build_classifier(settings, args.intents, args.classifier_url)
    manifold = workflow.build(classifier, settings)

    logger.info(f"Running workflow '{workflow.name}' ({len(prompts)} prompts)")
    start = time.time()
    results = asyncio.run(drive(manifold, prompts))
    duration = time.time() - start

    if args.json_output:
        _emit_json(verb, manifold, results, duration)
    else:
        _print_results(manifold, results)
    return 0


def demo_main(argv: list) -> int:
    """Handle 'demo' verb."""
    parser = _common_parser('demo')
    args = parser.parse_args(argv)
    try:
        workflow = Workflow.from_dict(DEMO_WORKFLOW)
        return _run_prompts('demo', workflow, args, list(DEMO_PROMPTS))
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def run_main(argv: list) -> int:
    """Handle 'run' verb."""
    parser = _common_parser('run')
    _add_workflow_args(parser)
    parser.add_argument(
        '--prompt', '-p',
        action='append',
        required=True,
        help='Prompt to route (repeatable, applied in order)',
    )
    args = parser.parse_args(argv)
    try:
        workflow = _load_workflow(args)
        return _run_prompts('run', workflow, args, [(p, '') for p in args.prompt])
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def validate_main(argv: list) -> int:
    """Handle 'validate' verb."""
    parser = _common_parser('validate')
    _add_workflow_args(parser)
    args = parser.parse_args(argv)
    _setup_logging(args.verbose, args.json_output)
    try:
        workflow = _load_workflow(args)
    except ConfigError as e:
        if args.json_output:
            print(json.dumps({'valid': False, 'error': str(e)}, indent=2))
        else:
            print(f"Invalid workflow: {e}", file=sys.stderr)
        return 1

    if args.json_output:
        print(json.dumps({'valid': True, 'workflow': workflow.to_dict()}, indent=2))
        return 0

    print(f"Workflow '{workflow.name}' is valid")
    print(f"  regions: {len(workflow.regions)} (depth {workflow.depth})")
    for region in workflow.regions:
        if region.is_nested:
            print(f"    {region.name:24} nested -> {region.nested.name}")
        else:
            ops = ', '.join(op.name for op in region.operators) or '-'
            print(f"    {region.name:24} operators: {ops}")
    print(f"  edges: {len(workflow.edges)}")
    return 0


def _usage() -> None:
    print("Usage: manifold <verb> [options]")
    print()
    print("Verbs:")
    for verb, desc in VERBS.items():
        print(f"  {verb:10} {desc}")


def main(argv: Optional[list] = None) -> int:
    """Dispatch to the verb handler.

    Returns:
        Exit code
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] in ('-h', '--help'):
        _usage()
        return 0

    verb, rest = argv[0], argv[1:]
    handlers = {
        'demo': demo_main,
        'run': run_main,
        'validate': validate_main,
    }
    handler = handlers.get(verb)
    if handler is None:
        print(f"Error: unknown verb '{verb}'", file=sys.stderr)
        _usage()
        return 1
    return handler(rest)


if __name__ == '__main__':
    sys.exit(main())
