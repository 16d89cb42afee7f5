#!/usr/bin/env python3
import os
import re
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent

# file -> pattern whose first group is the version string
VERSION_FILES = {
    'pyproject.toml': r'^(version = ")([^"]+)(")',
    'sigv4lite/__init__.py': r'^(__version__ = ")([^"]+)(")',
}


def bump_version(current: str, bump_type: str) -> str:
    major, minor, patch = map(int, current.split('.'))
    if bump_type == 'major':
        return f"{major + 1}.0.0"
    elif bump_type == 'minor':
        return f"{major}.{minor + 1}.0"
    elif bump_type == 'patch':
        return f"{major}.{minor}.{patch + 1}"
    else:
        raise ValueError(f"Invalid bump type: {bump_type}")


def read_version(root: Path = ROOT) -> str:
    content = (root / 'pyproject.toml').read_text()
    match = re.search(VERSION_FILES['pyproject.toml'], content, re.MULTILINE)
    if not match:
        raise ValueError("Could not find version in pyproject.toml")
    return match.group(2)


def write_version(new_version: str, root: Path = ROOT) -> None:
    for relpath, pattern in VERSION_FILES.items():
        path = root / relpath
        content, count = re.subn(
            pattern,
            lambda m: f"{m.group(1)}{new_version}{m.group(3)}",
            path.read_text(),
            count=1,
            flags=re.MULTILINE
        )
        if not count:
            raise ValueError(f"Could not find version in {relpath}")
        path.write_text(content)


def main():
    if len(sys.argv) != 2:
        print("Usage: bump_version.py <major|minor|patch>", file=sys.stderr)
        sys.exit(1)

    try:
        current_version = read_version()
        new_version = bump_version(current_version, sys.argv[1])
        write_version(new_version)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    # Output for GitHub Actions
    github_output = os.environ.get('GITHUB_OUTPUT')
    if github_output:
        with open(github_output, 'a') as f:
            f.write(f"current_version={current_version}\n")
            f.write(f"new_version={new_version}\n")
    else:
        print(f"Bumped version: {current_version} -> {new_version}")


if __name__ == '__main__':
    main()
