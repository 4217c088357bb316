"""Read VDF files

VDF is the key/value text format Steam uses for its app manifests and
configuration files:

    "AppState"
    {
        "appid"     "3164500"
        "UserConfig"
        {
            "BetaKey"   "beta"
        }
    }

The reader below is tolerant: it never raises on truncated or garbled data
and returns whatever could be read before the damage.
"""
from typing import Dict, Iterator, Tuple

from branchkeeper.util.log import logger

TOKEN_STRING = "string"
TOKEN_OPEN = "{"
TOKEN_CLOSE = "}"

ESCAPE_SEQUENCES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"'}

# Characters ending an unquoted token
DELIMITERS = '{}"'


def _tokenize(text: str) -> Iterator[Tuple[str, str]]:
    """Yield (kind, value) tuples for the strings and braces of a VDF document"""
    index = 0
    length = len(text)
    while index < length:
        char = text[index]
        if char.isspace():
            index += 1
        elif text.startswith("//", index):
            newline = text.find("\n", index)
            index = length if newline == -1 else newline + 1
        elif char == "{":
            index += 1
            yield TOKEN_OPEN, char
        elif char == "}":
            index += 1
            yield TOKEN_CLOSE, char
        elif char == '"':
            index += 1
            chunks = []
            while index < length and text[index] != '"':
                if text[index] == "\\" and index + 1 < length:
                    escaped = text[index + 1]
                    chunks.append(ESCAPE_SEQUENCES.get(escaped, "\\" + escaped))
                    index += 2
                else:
                    chunks.append(text[index])
                    index += 1
            if index >= length:
                logger.warning("VDF data ends inside a quoted string")
                return
            index += 1  # closing quote
            yield TOKEN_STRING, "".join(chunks)
        else:
            start = index
            while index < length and not text[index].isspace() and text[index] not in DELIMITERS:
                index += 1
            token = text[start:index]
            if token.startswith("[") and token.endswith("]"):
                # Platform conditionals such as [$WIN32] are ignored
                continue
            yield TOKEN_STRING, token


def vdf_loads(text: str) -> Dict:
    """Parse VDF text and return its content as nested dicts"""
    root: Dict = {}
    stack = [root]
    key = None
    for kind, value in _tokenize(text):
        section = stack[-1]
        if kind == TOKEN_STRING:
            if key is None:
                key = value
            else:
                section[key] = value
                key = None
        elif kind == TOKEN_OPEN:
            if key is None:
                logger.debug("Ignoring VDF block without a name")
                stack.append({})
                continue
            block = section.get(key)
            if not isinstance(block, dict):
                block = {}
                section[key] = block
            stack.append(block)
            key = None
        else:
            if key is not None:
                logger.debug("Dropping VDF key %s without a value", key)
                key = None
            if len(stack) > 1:
                stack.pop()
            else:
                logger.debug("Ignoring unbalanced closing brace in VDF data")
    if key is not None:
        logger.debug("Dropping VDF key %s without a value", key)
    if len(stack) > 1:
        logger.warning("VDF data ends inside a block, %s block(s) left open", len(stack) - 1)
    return root


def vdf_parse(steam_config_file, config):
    """Parse a Steam config file and return the contents as a dict."""
    try:
        text = steam_config_file.read()
    except UnicodeDecodeError:
        logger.error("Error while reading Steam VDF file %s. Returning %s", steam_config_file, config)
        return config
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    config.update(vdf_loads(text))
    return config
