"""Generate the Bash evaluator script from a ScriptConfig.

The evaluator reads recipe paths from stdin, one per line, sources each
recipe in a subshell and prints one protocol record per path on stdout.
Evaluation output is captured per recipe so that a recipe rejected
half-way through is replaced by a failure record as a whole, keeping
records aligned with input paths.
"""

from __future__ import annotations

import logging
import os
import shlex
import tempfile
from pathlib import Path

from ..keys import (
    KEY_SOURCE,
    PACKAGE_DEPENDENCY_CATEGORIES,
    PACKAGE_LISTS,
    PACKAGE_SCALARS,
    RECIPE_LISTS,
    RECIPE_SCALARS,
    checksum_key,
)
from .config import ScriptConfig

logger = logging.getLogger(__name__)

TEMP_PREFIX = ".pkgbuild-parser"

# Failure statuses reported in "failure:<status>" lines
STATUS_MISSING = 1
STATUS_AMBIGUOUS_ANY = 2
STATUS_PACKAGE_REUSED = 3
STATUS_MISSING_SPLIT_FUNCTION = 4
STATUS_MISSING_NAME = 5
STATUS_AMBIGUOUS_PACKAGE_ANY = 6
# The recipe itself exited; its own exit code is only carried in the message
STATUS_RECIPE_EXITED = 7

_HELPERS = r"""_fail() { #1: status, 2: message
  echo "ERROR: $2" >&2
  echo "error:$2"
  exit "$1"
}

_dump() { #1: key, 2...: values
  local _key="$1"
  shift
  set -- "${@//$'\n'/ }"
  printf "${_key}:%s\n" "$@"
}

_dump_categories() { #1: variable suffix, 2...: keys
  local _suffix="$1" _category
  shift
  for _category in "$@"; do
    local -n _values="${_category}${_suffix}"
    _dump "${_category}" "${_values[@]}"
    unset -n _values
  done
}

_check_arch() { #1...: architectures; returns 0 any only, 1 concrete, 2 ambiguous
  local _arch
  for _arch in "$@"; do
    if [[ "${_arch}" == any ]]; then
      (( $# == 1 )) && return 0
      return 2
    fi
  done
  return 1
}
"""


def _words(values: tuple[str, ...] | list[str]) -> str:
    return " ".join(values)


def _pattern(values: tuple[str, ...] | list[str], suffix: str = "") -> str:
    return "|".join(f"{value}{suffix}" for value in values)


class ScriptAssembler:
    """Render the evaluator script for one configuration.

    ``render()`` is a pure function of the config: equal configurations
    give byte-identical scripts.
    """

    def __init__(self, config: ScriptConfig | None = None):
        self.config = config or ScriptConfig()
        self.config.validate()
        categories = self.config.resolved_categories()
        self.package_categories = tuple(
            category for category in PACKAGE_DEPENDENCY_CATEGORIES if category in categories
        )
        arch_keys: list[str] = []
        if self.config.sources:
            arch_keys.append(KEY_SOURCE)
        arch_keys.extend(checksum_key(alg) for alg in self.config.resolved_checksums())
        arch_keys.extend(categories)
        self.arch_keys = tuple(arch_keys)

    def render(self) -> str:
        sections = [
            self._preamble(),
            _HELPERS,
            self._extract_function(),
            self._evaluate_function(),
            self._main_loop(),
        ]
        return "\n".join(sections)

    def build(self) -> ScriptArtifact:
        """Write the script to the configured destination or a temp file."""
        text = self.render()
        destination = self.config.destination
        if destination is not None:
            path = Path(destination)
            path.write_text(text, encoding="utf-8")
            logger.debug(f"Wrote evaluator script to {path}")
            return ScriptArtifact(path, ephemeral=False)

        fd, name = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=".bash")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
        except OSError:
            os.unlink(name)
            raise
        logger.debug(f"Wrote evaluator script to temporary file {name}")
        return ScriptArtifact(Path(name), ephemeral=True)

    def _preamble(self) -> str:
        config = self.config
        return "\n".join(
            [
                "#!/bin/bash",
                "# Generated evaluator: reads recipe paths on stdin, prints records on stdout",
                f"LIBRARY={shlex.quote(config.library)}",
                f"MAKEPKG_CONF={shlex.quote(config.makepkg_config)}",
                'source "${LIBRARY}/util.sh" ||',
                '  { echo "ERROR: Failed to source ${LIBRARY}/util.sh" >&2; exit 1; }',
                "source_makepkg_config ||",
                '  { echo "ERROR: Failed to load ${MAKEPKG_CONF}" >&2; exit 1; }',
                "",
            ]
        )

    def _extract_function(self) -> str:
        """Bash function replaying the metadata assignments of a package function.

        Only direct top-level assignments are replayed. Generic keys are
        flagged in ``_pkg_declared`` so that undeclared ones are not
        reported as package overrides.
        """
        generic = (*PACKAGE_SCALARS, "arch", *PACKAGE_LISTS, *self.package_categories)
        arch_specific = _pattern(self.package_categories, "_*")
        lines = [
            "_extract_package_vars() { #1: package function",
            "  local _lines _line _buffer='' _name",
            '  mapfile -t _lines < <(declare -f "$1")',
            '  for _line in "${_lines[@]:2:${#_lines[@]}-3}"; do',
            '    if [[ "${_buffer}" ]]; then',
            "      _buffer+=$'\\n'\"${_line}\"",
            "      if [[ \"${_line}\" == *')' || \"${_line}\" == *');' ]]; then",
            '        eval "${_buffer}"',
            "        _buffer=''",
            "      fi",
            "      continue",
            "    fi",
            '    [[ "${_line}" =~ ^[[:space:]]*([A-Za-z0-9_]+)\\+?= ]] || continue',
            '    _name="${BASH_REMATCH[1]}"',
            '    case "${_name}" in',
            f"      {_pattern(generic)})",
            '        _pkg_declared["${_name}"]=y',
            "        ;;",
        ]
        if arch_specific:
            lines.extend([f"      {arch_specific})", "        ;;"])
        lines.extend(
            [
                "      *)",
                "        continue",
                "        ;;",
                "    esac",
                '    _line="${_line#"${_line%%[![:space:]]*}"}"',
                "    if [[ \"${_line}\" == *'=('* && \"${_line}\" != *')' && \"${_line}\" != *');' ]]; then",
                '      _buffer="${_line}"',
                "    else",
                '      eval "${_line}"',
                "    fi",
                "  done",
                "}",
                "",
            ]
        )
        return "\n".join(lines)

    def _recipe_header(self) -> list[str]:
        lines = [f'  _dump {key} "${{{key}}}"' for key in RECIPE_SCALARS]
        lines.append('  _dump arch "${arch[@]}"')
        lines.extend(f'  _dump {key} "${{{key}[@]}}"' for key in RECIPE_LISTS)
        if self.config.pkgver_func:
            lines.extend(
                [
                    "  if declare -F pkgver >/dev/null; then",
                    "    echo pkgver_func:y",
                    "  else",
                    "    echo pkgver_func:n",
                    "  fi",
                ]
            )
        return lines

    def _arch_sections(self) -> list[str]:
        keys = _words(self.arch_keys)
        unset = " ".join(f'"{category}_${{_arch}}"' for category in self.package_categories)
        lines = [
            '  _check_arch "${arch[@]}"',
            "  _arch_kind=$?",
            f"  (( _arch_kind == 2 )) && _fail {STATUS_AMBIGUOUS_ANY} "
            "\"Recipe architecture 'any' found when multiple architectures defined: ${arch[*]}\"",
            "  echo ARCH",
            "  echo arch:any",
            f"  _dump_categories '' {keys}",
            "  echo END",
        ]
        if not self.config.arch_specific:
            return lines
        lines.extend(
            [
                "  if (( _arch_kind == 1 )); then",
                '    for _arch in "${arch[@]}"; do',
                "      echo ARCH",
                '      _dump arch "${_arch}"',
                f'      _dump_categories "_${{_arch}}" {keys}',
                "      echo END",
            ]
        )
        # Package sections must only see what package functions declare
        if unset:
            lines.append(f"      unset -v {unset}")
        lines.extend(["    done", "  fi"])
        return lines

    def _package_block(self) -> list[str]:
        lines = [
            "  _generic_users=0",
            '  for _pkgname in "${pkgname[@]}"; do',
            '    declare -F "package_${_pkgname}" >/dev/null || (( ++_generic_users ))',
            "  done",
            '  for _pkgname in "${pkgname[@]}"; do',
            "  (",
            "    echo PACKAGE",
            '    _dump pkgname "${_pkgname}"',
            '    if declare -F "package_${_pkgname}" >/dev/null; then',
            '      _pkg_func="package_${_pkgname}"',
            "    elif declare -F package >/dev/null; then",
            f"      (( _generic_users == 1 )) || _fail {STATUS_PACKAGE_REUSED} "
            '"Function package() cannot be shared by packages: ${pkgname[*]}"',
            "      _pkg_func=package",
            "    elif (( ${#pkgname[@]} == 1 )); then",
            "      _pkg_func=''",
            "    else",
            f'      _fail {STATUS_MISSING_SPLIT_FUNCTION} "Missing package_${{_pkgname}}() function"',
            "    fi",
            "    declare -A _pkg_declared=()",
            '    [[ "${_pkg_func}" ]] && _extract_package_vars "${_pkg_func}"',
        ]
        lines.extend(
            f'    [[ "${{_pkg_declared[{key}]}}" ]] && _dump {key} "${{{key}}}"'
            for key in PACKAGE_SCALARS
        )
        lines.extend(
            [
                '    if [[ "${_pkg_declared[arch]}" ]]; then',
                '      _dump arch "${arch[@]}"',
                '      _check_arch "${arch[@]}"',
                f"      (( $? == 2 )) && _fail {STATUS_AMBIGUOUS_PACKAGE_ANY} "
                "\"Package '${_pkgname}' architecture 'any' found when multiple architectures defined: ${arch[*]}\"",
                "    fi",
            ]
        )
        lines.extend(
            f'    [[ "${{_pkg_declared[{key}]}}" ]] && _dump {key} "${{{key}[@]}}"'
            for key in PACKAGE_LISTS
        )
        lines.extend(["    echo PACKAGEARCH", "    echo arch:any"])
        lines.extend(
            f'    [[ "${{_pkg_declared[{key}]}}" ]] && _dump {key} "${{{key}[@]}}"'
            for key in self.package_categories
        )
        lines.append("    echo END")
        if self.config.arch_specific:
            lines.extend(
                [
                    '    _check_arch "${arch[@]}"',
                    "    if (( $? == 1 )); then",
                    '      for _arch in "${arch[@]}"; do',
                    "        echo PACKAGEARCH",
                    '        _dump arch "${_arch}"',
                    f'        _dump_categories "_${{_arch}}" {_words(self.package_categories)}',
                    "        echo END",
                    "      done",
                    "    fi",
                ]
            )
        lines.extend(["    echo END", "  ) || exit $?", "  done"])
        return lines

    def _evaluate_function(self) -> str:
        lines = [
            "_evaluate() { #1: recipe path",
            '  local _recipe="$1"',
            f"  [[ -f \"${{_recipe}}\" ]] || _fail {STATUS_MISSING} \"Recipe '${{_recipe}}' does not exist\"",
            '  source "${_recipe}" 1>&2 </dev/null',
            "  echo PKGBUILD",
            f'  [[ "${{pkgname[*]}}" ]] || _fail {STATUS_MISSING_NAME} '
            "\"Recipe '${_recipe}' declares no pkgname\"",
            '  if [[ -z "${pkgbase}" ]]; then',
            f"    (( ${{#pkgname[@]}} == 1 )) || _fail {STATUS_MISSING_NAME} "
            "\"Recipe '${_recipe}' declares several packages but no pkgbase\"",
            '    pkgbase="${pkgname[0]}"',
            "  fi",
        ]
        lines.extend(self._recipe_header())
        lines.extend(self._arch_sections())
        lines.extend(self._package_block())
        lines.extend(["  echo END", "}", ""])
        return "\n".join(lines)

    def _main_loop(self) -> str:
        """Emit exactly one record per path.

        A rejection through ``_fail`` leaves its ``error:`` line last. Any
        other outcome that is not a complete record means the recipe ran
        ``exit`` itself, whatever the code, and gets its own status.
        """
        exited = "Recipe '${_path}' exited with status ${_status} before producing a record"
        return "\n".join(
            [
                "while IFS= read -r _path; do",
                '  _record="$(_evaluate "${_path}" </dev/null)"',
                "  _status=$?",
                "  _last=\"${_record##*$'\\n'}\"",
                '  if (( _status )) && [[ "${_last}" == error:* ]]; then',
                "    echo PKGBUILD",
                '    echo "failure:${_status}"',
                "    printf '%s\\n' \"${_last}\"",
                "    echo END",
                "  elif (( _status )) || [[ \"${_record}\" != PKGBUILD$'\\n'* "
                '|| "${_last}" != END ]]; then',
                f'    echo "ERROR: {exited}" >&2',
                "    echo PKGBUILD",
                f"    echo failure:{STATUS_RECIPE_EXITED}",
                f'    echo "error:{exited}"',
                "    echo END",
                "  else",
                "    printf '%s\\n' \"${_record}\"",
                "  fi",
                "done",
                "",
            ]
        )


class ScriptArtifact:
    """A written evaluator script.

    Ephemeral artifacts are deleted by ``close()`` or on context exit;
    persistent ones are left in place.
    """

    def __init__(self, path: Path, ephemeral: bool):
        self.path = path
        self.ephemeral = ephemeral
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.ephemeral:
            self.path.unlink(missing_ok=True)
            logger.debug(f"Removed temporary evaluator script {self.path}")

    def __enter__(self) -> ScriptArtifact:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __fspath__(self) -> str:
        return str(self.path)

    def __repr__(self) -> str:
        return f"ScriptArtifact({str(self.path)!r}, ephemeral={self.ephemeral})"


def build(config: ScriptConfig | None = None) -> ScriptArtifact:
    """Render and write the evaluator script for ``config``."""
    return ScriptAssembler(config).build()
