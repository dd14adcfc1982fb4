"""The shell-init script that realizes PATH and sourced-script deployments."""

from __future__ import annotations

import logging
import shlex

from .errors import FilesystemError
from .filesystem import Filesystem, lexists
from .paths import Paths

logger = logging.getLogger(__name__)

DATA_DIR_PLACEHOLDER = "__DATA_DIR__"

SHELL_INIT_TEMPLATE = """\
# dotpack shell integration; generated file, edits are overwritten.
# Source it from your shell rc file:  . <this file>

_dotpack_deployed=__DATA_DIR__/deployed

DOTPACK_PATH_DIRS=""
for _dotpack_entry in "$_dotpack_deployed"/path/*; do
    [ -d "$_dotpack_entry" ] || continue
    _dotpack_dir=$(CDPATH= cd -P -- "$_dotpack_entry" 2>/dev/null && pwd -P) || continue
    case ":${PATH}:" in
        *":${_dotpack_dir}:"*) ;;
        *) PATH="${_dotpack_dir}${PATH:+:${PATH}}" ;;
    esac
    case ":${DOTPACK_PATH_DIRS}:" in
        *":${_dotpack_dir}:"*) ;;
        *) DOTPACK_PATH_DIRS="${DOTPACK_PATH_DIRS:+${DOTPACK_PATH_DIRS}:}${_dotpack_dir}" ;;
    esac
done
export PATH DOTPACK_PATH_DIRS

DOTPACK_SHELL_SOURCES=""
for _dotpack_entry in "$_dotpack_deployed"/shell_profile/* "$_dotpack_deployed"/shell_source/*; do
    [ -f "$_dotpack_entry" ] || continue
    . "$_dotpack_entry"
    DOTPACK_SHELL_SOURCES="${DOTPACK_SHELL_SOURCES:+${DOTPACK_SHELL_SOURCES}:}${_dotpack_entry}"
done
export DOTPACK_SHELL_SOURCES

dotpack_status() {
    for _dotpack_kind in path shell_profile shell_source; do
        for _dotpack_entry in __DATA_DIR__/deployed/"$_dotpack_kind"/*; do
            if [ -e "$_dotpack_entry" ]; then
                printf '%s\\t%s\\n' "$_dotpack_kind" "${_dotpack_entry##*/}"
            elif [ -L "$_dotpack_entry" ]; then
                printf '%s\\t%s [broken]\\n' "$_dotpack_kind" "${_dotpack_entry##*/}"
            fi
        done
    done
    unset _dotpack_kind _dotpack_entry
}

unset _dotpack_deployed _dotpack_entry _dotpack_dir
"""


def render_shell_init(paths: Paths) -> str:
    return SHELL_INIT_TEMPLATE.replace(DATA_DIR_PLACEHOLDER, shlex.quote(str(paths.data_dir())))


def install_shell_init(paths: Paths, fs: Filesystem, *, dry_run: bool = False) -> bool:
    """Write the init script if its content changed; return ``True`` if it was (or would be) written."""

    script = paths.init_script_path()
    content = render_shell_init(paths).encode("utf-8")

    if lexists(fs, script):
        try:
            if fs.read_file(script) == content:
                return False
        except OSError as exc:
            logger.warning("Cannot read existing %s, rewriting it: %s", script, exc)

    if dry_run:
        return True

    try:
        fs.mkdir_all(script.parent)
        fs.write_file(script, content, mode=0o644)
    except OSError as exc:
        raise FilesystemError(f"Failed to write shell init script '{script}': {exc}") from exc
    logger.info("Installed shell init script at %s", script)
    return True


def shell_snippet(paths: Paths) -> str:
    """Return the line users add to their shell rc file."""

    script = paths.init_script_path()
    return f'[ -f "{script}" ] && . "{script}"'
