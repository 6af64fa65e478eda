"""Prompt templates for story generation.

Chinese-native providers get the instruction in Chinese, everyone else in
English. Both phrasings carry the same rules: target length, every word
tagged exactly once in the four-part markup, accurate translations with a
context meaning, no omissions, and the theme.
"""
from __future__ import annotations

from dataclasses import dataclass

from story_vocab.providers.base import PromptFamily, ProviderSpec
from story_vocab.providers.registry import get_provider, request_params

SYSTEM_MESSAGE = (
    "You are a creative writing assistant for English vocabulary learners. "
    "You write engaging stories and follow formatting instructions exactly."
)

ENGLISH_STORY_PROMPT = """\
Write a {length}-word English story with the theme "{theme}".

The story MUST use ALL {count} of the following vocabulary words: {word_list}

Requirements:
1. The story should be about {length} words long, coherent and interesting.
2. Every vocabulary word must appear exactly once, tagged in this exact format:
   **word** [part of speech] (Chinese translation) *meaning in this sentence*
3. Chinese translations must be accurate and concise. The context meaning \
explains the word's specific sense in that sentence, in a few English words.
4. ZERO TOLERANCE for omissions: all {count} words are mandatory. A story that \
leaves out even one word is rejected. Check the list before you finish.
5. Theme: {theme}

Example: The traveler had to **abandon** [v.] (放弃) *give up completely* his quest \
when the bridge proved too **fragile** [adj.] (脆弱的) *easily broken* to cross.

Words to include ({count}): {word_list}
"""

CHINESE_STORY_PROMPT = """\
请写一篇约 {length} 个单词的英文故事，主题是"{theme}"。

故事必须包含以下全部 {count} 个词汇：{word_list}

要求：
1. 故事长度约 {length} 个英文单词，情节连贯、有趣。
2. 每个词汇必须恰好出现一次，并严格使用以下格式标注：
   **单词** [词性] (中文翻译) *该词在本句中的含义*
3. 中文翻译要准确简洁；语境含义用几个英文单词说明该词在这句话里的具体意思。
4. 绝不允许遗漏：全部 {count} 个词汇都是必须的，缺少任何一个都视为失败。完成前请逐一核对。
5. 主题：{theme}

示例：The traveler had to **abandon** [v.] (放弃) *give up completely* his quest \
when the bridge proved too **fragile** [adj.] (脆弱的) *easily broken* to cross.

需要包含的词汇（共 {count} 个）：{word_list}
"""

TEMPLATES = {
    PromptFamily.ENGLISH: ENGLISH_STORY_PROMPT,
    PromptFamily.CHINESE: CHINESE_STORY_PROMPT,
}


@dataclass(frozen=True)
class StoryPrompt:
    instruction_text: str
    system_message: str | None
    temperature: float
    max_output_tokens: int

    def messages(self) -> list[dict[str, str]]:
        msgs = []
        if self.system_message:
            msgs.append({"role": "system", "content": self.system_message})
        msgs.append({"role": "user", "content": self.instruction_text})
        return msgs


def format_word_list(words: list[str]) -> str:
    return ", ".join(w.strip() for w in words if w.strip())


def build_story_prompt(
    words: list[str],
    theme: str,
    target_length: int,
    provider: str | ProviderSpec,
) -> StoryPrompt:
    spec = provider if isinstance(provider, ProviderSpec) else get_provider(provider)
    word_list = format_word_list(words)
    count = len([w for w in words if w.strip()])
    text = TEMPLATES[spec.prompt_family].format(
        length=target_length,
        theme=theme,
        count=count,
        word_list=word_list,
    )
    temperature, max_tokens = request_params(spec, target_length)
    return StoryPrompt(
        instruction_text=text,
        system_message=SYSTEM_MESSAGE if spec.uses_system_message else None,
        temperature=temperature,
        max_output_tokens=max_tokens,
    )
