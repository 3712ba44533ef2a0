"""Extraction of jfpm flags from argument lists that are otherwise passed to npm.

The npm commands accept any npm argument. Flags that jfpm owns are pulled
out here and the remaining list is handed to the package manager untouched.
"""

from typing import List, Optional, Tuple

from ..errors import ConfigInvalidError
from ..models.build import BuildConfiguration

DEFAULT_THREADS = 3
SCAN_OUTPUT_FORMATS = ("table", "json")


def find_flag(flag: str, args: List[str]) -> Tuple[int, str, List[str]]:
    """Find a value flag in args and remove it.

    Both "--flag=value" and "--flag value" are supported. Other flags sharing
    the same prefix (e.g. "--threads-count" for "--threads") are ignored.

    Args:
        flag: Flag name including the leading dashes.
        args: Argument list. Not modified.

    Returns:
        (index, value, clean_args). index is -1 and value is "" when the flag
        is absent; clean_args is args without the flag and its value.

    Raises:
        ConfigInvalidError: If the flag is present without a usable value.
    """
    for index, arg in enumerate(args):
        if arg == flag:
            if index + 1 >= len(args) or args[index + 1].startswith("-"):
                raise ConfigInvalidError(f"Flag {flag} is provided with empty value.")
            value = args[index + 1]
            return index, value, args[:index] + args[index + 2:]
        if arg.startswith(flag + "="):
            value = arg[len(flag) + 1:]
            if not value:
                raise ConfigInvalidError(f"Flag {flag} is provided with empty value.")
            return index, value, args[:index] + args[index + 1:]
    return -1, "", list(args)


def find_boolean_flag(flag: str, args: List[str]) -> Tuple[int, bool, List[str]]:
    """Find a boolean flag ("--flag" or "--flag=<bool>") in args and remove it.

    Returns:
        (index, value, clean_args); index is -1 and value False when absent.

    Raises:
        ConfigInvalidError: If the value is not a boolean literal.
    """
    for index, arg in enumerate(args):
        if arg == flag:
            return index, True, args[:index] + args[index + 1:]
        if arg.startswith(flag + "="):
            raw = arg[len(flag) + 1:].lower()
            if raw in ("true", "1", "t"):
                value = True
            elif raw in ("false", "0", "f"):
                value = False
            else:
                raise ConfigInvalidError(f"Flag {flag} expects a boolean value, got '{raw}'.")
            return index, value, args[:index] + args[index + 1:]
    return -1, False, list(args)


def extract_threads(args: List[str]) -> Tuple[int, List[str]]:
    index, value, clean_args = find_flag("--threads", args)
    if index < 0:
        return DEFAULT_THREADS, clean_args
    try:
        threads = int(value)
    except ValueError:
        raise ConfigInvalidError(f"The '--threads' option should have a numeric value. Got '{value}'.")
    if threads <= 0:
        raise ConfigInvalidError("The '--threads' option should have a positive value.")
    return threads, clean_args


def extract_build_config(args: List[str]) -> Tuple[BuildConfiguration, List[str]]:
    """Pull --build-name, --build-number, --project and --module out of args."""
    _, build_name, args = find_flag("--build-name", args)
    _, build_number, args = find_flag("--build-number", args)
    _, project, args = find_flag("--project", args)
    _, module, args = find_flag("--module", args)
    config = BuildConfiguration(
        build_name=build_name,
        build_number=build_number,
        project=project,
        module=module,
    )
    config.validate()
    return config, args


def extract_npm_options(
    args: List[str],
) -> Tuple[int, bool, bool, str, List[str], BuildConfiguration]:
    """Split jfpm npm options from the npm arguments.

    Returns:
        (threads, detailed_summary, xray_scan, scan_output_format, clean_args,
        build_config)
    """
    threads, clean_args = extract_threads(args)
    _, detailed_summary, clean_args = find_boolean_flag("--detailed-summary", clean_args)
    _, xray_scan, clean_args = find_boolean_flag("--scan", clean_args)
    _, scan_output_format, clean_args = find_flag("--format", clean_args)
    scan_output_format = (scan_output_format or "table").lower()
    if scan_output_format not in SCAN_OUTPUT_FORMATS:
        raise ConfigInvalidError(
            f"Unsupported format '{scan_output_format}'. Use one of: {', '.join(SCAN_OUTPUT_FORMATS)}."
        )
    build_config, clean_args = extract_build_config(clean_args)
    return threads, detailed_summary, xray_scan, scan_output_format, clean_args, build_config


def extract_optional_flag(flag: str, args: List[str]) -> Tuple[Optional[str], List[str]]:
    """Like find_flag, but returns None for an absent flag."""
    index, value, clean_args = find_flag(flag, args)
    return (value if index >= 0 else None), clean_args
