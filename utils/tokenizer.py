# utils/tokenizer.py

import tiktoken

_encoding = None


def _get_encoding():
    global _encoding
    if _encoding is None:
        _encoding = tiktoken.get_encoding("cl100k_base")
    return _encoding


def get_token_count(text: str) -> int:
    # special tokens are rejected by encode(), and they carry no meaning in a diff
    text = text.replace("<|endoftext|>", "")
    return len(_get_encoding().encode(text))
