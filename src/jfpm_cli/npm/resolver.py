"""Dependency graph extraction from `npm ls`."""

import json
import logging
from typing import Any, Dict, List, Sequence

from ..models.dependency import Dependency, TypeRestriction
from .driver import PackageManagerDriver

logger = logging.getLogger(__name__)

DEV_SCOPE = "dev"
PROD_SCOPE = "prod"


def update_type_restriction(current: TypeRestriction, key: str, value: str) -> TypeRestriction:
    """Fold one `npm config ls` entry into the type restriction.

    From npm 7 "omit" decides and always wins. The older "only" and
    "production" keys only apply while nothing has been decided yet, since
    npm 6 lists config entries by descending priority.
    """
    if key == "omit":
        return TypeRestriction.PROD_ONLY if "dev" in value else TypeRestriction.ALL
    if current is not TypeRestriction.DEFAULT:
        return current
    if key == "only":
        if "prod" in value:
            return TypeRestriction.PROD_ONLY
        if "dev" in value:
            return TypeRestriction.DEV_ONLY
    elif key == "production" and "true" in value:
        return TypeRestriction.PROD_ONLY
    return current


def parse_dependencies(
    tree: Dict[str, Any],
    scope: str,
    path_to_root: List[str],
    dependencies: Dict[str, Dependency],
) -> None:
    """Walk a `dependencies` object of `npm ls --json` output depth-first.

    Args:
        tree: Mapping of package name to its `npm ls` node.
        scope: "dev" or "prod".
        path_to_root: Keys of the ancestors of the nodes in tree, innermost
            first and ending with the build module id.
        dependencies: Map of "name:version" to Dependency, updated in place.
    """
    for name, node in tree.items():
        if not isinstance(node, dict):
            continue
        version = node.get("version")
        child_path = path_to_root
        if not version:
            logger.debug(
                "Skipping %s: 'npm ls' did not return its version. This usually means it is a "
                "peer dependency that was not installed.",
                name,
            )
        else:
            dep_key = f"{name}:{version}"
            dependency = dependencies.get(dep_key)
            if dependency is None:
                dependency = Dependency(name=name, version=version, scopes=[scope])
                dependencies[dep_key] = dependency
            else:
                dependency.add_scope(scope)
            dependency.path_to_root.append(list(path_to_root))
            child_path = [dep_key, *path_to_root]

        transitive = node.get("dependencies")
        if transitive:
            parse_dependencies(transitive, scope, child_path, dependencies)


def run_list(driver: PackageManagerDriver, npm_args: Sequence[str], scope: str) -> Dict[str, Any]:
    """Run `npm ls --all --<scope> --json` and return the parsed tree.

    npm exits non-zero on problems such as missing peers while still printing
    a usable tree, so failures are only logged.
    """
    stdout, stderr, returncode = driver.capture_lenient(
        ["ls", *npm_args, "--all", f"--{scope}", "--json"]
    )
    if returncode != 0:
        logger.warning("npm ls exited with code %d", returncode)
    if stderr.strip():
        logger.warning("Some errors occurred while collecting dependencies info:\n%s", stderr.strip())
    if not stdout.strip():
        return {}
    try:
        data = json.loads(stdout)
    except ValueError as e:
        logger.warning("Could not parse npm ls output: %s", e)
        return {}
    return data if isinstance(data, dict) else {}


def calculate_dependencies(
    type_restriction: TypeRestriction,
    npm_args: Sequence[str],
    driver: PackageManagerDriver,
    module_id: str,
) -> Dict[str, Dependency]:
    """Collect the dependency map of the project.

    The dev pass runs unless the restriction is prod-only and the prod pass
    runs unless it is dev-only.
    """
    dependencies: Dict[str, Dependency] = {}
    scopes = []
    if type_restriction is not TypeRestriction.PROD_ONLY:
        scopes.append(DEV_SCOPE)
    if type_restriction is not TypeRestriction.DEV_ONLY:
        scopes.append(PROD_SCOPE)
    for scope in scopes:
        data = run_list(driver, npm_args, scope)
        parse_dependencies(data.get("dependencies") or {}, scope, [module_id], dependencies)
    logger.debug("Collected %d dependencies", len(dependencies))
    return dependencies
