#!/usr/bin/env python3
"""
SSO Profile Generator CLI

A command-line utility that creates AWS CLI profiles for every account and
role your SSO session can reach, using an existing SSO profile as template.
"""

import argparse
import logging
import os
import sys
from pathlib import Path

# Add the parent directory to sys.path to import profilegen
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
from profilegen import (
    DEFAULT_PATTERN,
    ConflictResolutionStrategy,
    ProfileGenerator,
    ProfileGeneratorError,
)
from profilegen.conflicts import ActionType, ProfileConflictDetector
from profilegen.discovery import SSOTokenCache
from profilegen.errors import AuthError
from profilegen.generator import DEFAULT_MAX_ATTEMPTS
from profilegen.naming import get_supported_placeholders, preview_pattern


def prompt_for_conflict(conflict):
    """Ask the user what to do with one conflict."""
    role = conflict.discovered_role
    print(f"\nConflict for {role}:")
    print(f"  Proposed profile: {conflict.proposed_name}")
    print(f"  Conflict type: {conflict.conflict_type}")
    print("  Existing profiles:")
    for profile in conflict.existing_profiles:
        print(f"    - {profile}")

    while True:
        choice = input("Replace existing profile, skip role, or cancel? [r/s/c]: ").strip().lower()
        if choice in ("r", "replace"):
            return ActionType.REPLACE
        if choice in ("s", "skip"):
            return ActionType.SKIP
        if choice in ("c", "cancel"):
            print("Cancelled.")
            sys.exit(1)
        print("Please answer r, s or c.")


def confirm(question):
    answer = input(f"{question} [y/N]: ").strip().lower()
    return answer in ("y", "yes")


def report_error(error):
    """Print a profile generator error with its remediation hint."""
    print(f"❌ {error}")
    for key, value in error.context.items():
        if key != "suggestion":
            print(f"   {key}: {value}")
    if error.suggestion:
        print(f"\n💡 {error.suggestion}")


def _build_generator(args, **kwargs):
    return ProfileGenerator(
        template_profile=args.template,
        naming_pattern=args.pattern,
        config_path=args.config_file,
        **kwargs,
    )


def handle_generate(args):
    """Handle the generate command."""
    strategy = ConflictResolutionStrategy.from_string(args.strategy)
    generator = _build_generator(
        args,
        auto_approve=args.yes,
        conflict_strategy=strategy,
        prompt=prompt_for_conflict,
        max_attempts=args.max_attempts,
    )

    result = generator.generate_profiles_workflow()

    if result.detected_conflicts:
        print(generator.generate_conflict_report(result))

    print("Profiles to write:\n")
    print(generator.preview_profiles(result.generated_profiles))

    if not result.written and result.generated_profiles:
        if confirm(f"Write {len(result.generated_profiles)} profiles to {generator.config_file.file_path}?"):
            generator.write_profiles(result.generated_profiles, result.replaced_profiles)
            result.written = True
        else:
            print("No changes written.")

    print(result.summary())


def handle_conflicts(args):
    """Handle the conflicts command."""
    generator = _build_generator(args, max_attempts=args.max_attempts)
    template = generator.validate_template_profile()
    roles = generator.discover_roles(template)
    conflicts = generator.detect_profile_conflicts(roles)

    print(f"Discovered {len(roles)} roles.\n")
    print(ProfileConflictDetector.generate_conflict_summary(conflicts))


def handle_preview_pattern(args):
    """Handle the preview-pattern command."""
    print(f"Pattern: {args.pattern}\n")
    for description, name in preview_pattern(args.pattern):
        print(f"  {description}")
        print(f"    → {name}")
    print(f"\nSupported placeholders: {', '.join(get_supported_placeholders())}")


def handle_token_info(args):
    """Handle the token-info command."""
    cache = SSOTokenCache(cache_dir=args.cache_dir)

    if args.clean:
        removed = cache.clean_expired_tokens()
        print(f"Removed {removed} expired token files")

    info = cache.get_cache_info()
    print(f"SSO token cache: {info['cache_dir']}")
    print(f"  Total tokens: {info['total_tokens']}")
    print(f"  Valid tokens: {info['valid_tokens']}")
    print(f"  Expired tokens: {info['expired_tokens']}")


def _add_template_arguments(parser):
    parser.add_argument("--template", "-t", default=os.environ.get("AWS_PROFILE"),
                        required="AWS_PROFILE" not in os.environ,
                        help="SSO profile to use as template (defaults to AWS_PROFILE)")
    parser.add_argument("--pattern", "-p", default=DEFAULT_PATTERN,
                        help=f"Naming pattern for new profiles (default: {DEFAULT_PATTERN})")
    parser.add_argument("--config-file", type=Path,
                        help="AWS config file (defaults to AWS_CONFIG_FILE or ~/.aws/config)")
    parser.add_argument("--max-attempts", type=int, default=DEFAULT_MAX_ATTEMPTS,
                        help="Role discovery attempts before giving up")


def build_parser():
    parser = argparse.ArgumentParser(
        description="SSO Profile Generator - Create AWS CLI profiles for every role your SSO session can reach"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Generate command
    generate_parser = subparsers.add_parser("generate", help="Generate profiles for all accessible roles")
    _add_template_arguments(generate_parser)
    generate_parser.add_argument("--strategy", "-s", default="prompt",
                                 choices=[s.value for s in ConflictResolutionStrategy],
                                 help="How to handle conflicts with existing profiles")
    generate_parser.add_argument("--yes", "-y", action="store_true",
                                 help="Write profiles without asking for confirmation")
    generate_parser.set_defaults(func=handle_generate)

    # Conflicts command
    conflicts_parser = subparsers.add_parser("conflicts", help="Show conflicts without changing anything")
    _add_template_arguments(conflicts_parser)
    conflicts_parser.set_defaults(func=handle_conflicts)

    # Preview pattern command
    preview_parser = subparsers.add_parser("preview-pattern", help="Show sample names for a naming pattern")
    preview_parser.add_argument("pattern", help="Naming pattern to preview")
    preview_parser.set_defaults(func=handle_preview_pattern)

    # Token info command
    token_parser = subparsers.add_parser("token-info", help="Show SSO token cache status")
    token_parser.add_argument("--clean", action="store_true", help="Remove expired token files")
    token_parser.add_argument("--cache-dir", type=Path, help="SSO cache directory (defaults to ~/.aws/sso/cache)")
    token_parser.set_defaults(func=handle_token_info)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        args.func(args)
    except AuthError as e:
        report_error(e)
        print(f"\n{SSOTokenCache.get_auth_guide_message(e.context.get('start_url', ''), e.context.get('region', ''))}")
        sys.exit(1)
    except ProfileGeneratorError as e:
        report_error(e)
        sys.exit(1)


if __name__ == "__main__":
    main()
