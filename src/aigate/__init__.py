# Copyright 2026 The aigate Authors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
aigate - AI provider routing and streaming gateway

One request contract in front of Anthropic, OpenAI and Gemini, with
automatic fallback, per-adapter health tracking, per-client rate limiting
and Server-Sent-Events streaming.
"""

__version__ = "0.1.0"
__author__ = "aigate Development"

from aigate.core.models import (
    ChatMessage,
    CompletionRequest,
    CompletionResult,
    ErrorKind,
    ImageAttachment,
    Role,
)

__all__ = [
    "ChatMessage",
    "CompletionRequest",
    "CompletionResult",
    "ErrorKind",
    "ImageAttachment",
    "Role",
    "__version__",
]
