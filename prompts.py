from string import Template

from pydantic import BaseModel


class Inputs(BaseModel):
    """Values substituted into the `$name` placeholders of a prompt template."""
    system_message: str = ""
    title: str = "no title provided"
    description: str = "no description provided"
    raw_summary: str = ""
    short_summary: str = ""
    filename: str = ""
    file_diff: str = "file diff cannot be provided"
    patches: str = ""
    patch: str = ""
    review: str = ""

    def clone(self) -> "Inputs":
        return self.model_copy()

    def render(self, template: str) -> str:
        if not template:
            return ""
        return Template(template).safe_substitute(self.model_dump())


_TRIAGE_FORMAT = """
You must strictly follow the format below for triaging the diff:
[TRIAGE]: <NEEDS_REVIEW or APPROVED>
"""

_TRIAGE_CRITERIA = """- Triage the differences as `NEEDS_REVIEW` only if they are certain to have adverse effects, such as bugs, reduced readability, decrease in type safety, security risks, or performance degradation.
- In all other cases, triage the differences as `APPROVED`. This includes cases where it is not possible to determine whether there is an adverse effect solely on the basis of the submitted diff.

When in doubt, always avoid an incorrect review and triage the diff as `APPROVED`.
"""

SUMMARIZE_FILE_DIFF = """## GitHub PR Title

`$title`

## Description

```
$description
```

## Diff

```diff
$file_diff
```

## Instructions

I would like you to succinctly summarize the diff within 100 words.
If applicable, your summary should include a note about alterations
to the signatures of exported functions, global data structures and
variables, and any changes that might affect the external interface or
behavior of the code.
"""

TRIAGE_FILE_DIFF = (
    "Below the summary, I would also like you to triage the diff as `NEEDS_REVIEW` or\n"
    "`APPROVED` based on the following criteria:\n\n"
    + _TRIAGE_CRITERIA
    + _TRIAGE_FORMAT
    + """
Important:
- In your summary do not mention that the file needs a thorough review or caution about
  potential issues.
- Do not provide any reasoning why you triaged the diff as `NEEDS_REVIEW` or `APPROVED`.
- Do not mention that these changes affect the logic or functionality of the code in
  the summary. You must only use the triage status format above to indicate that.
"""
)

SUMMARIZE_CHANGESETS = """Provided below are changesets in this pull request. Changesets
are in chronological order and new changesets are appended to the
end of the list. The format consists of filename(s) and the summary
of changes for those files. There is a separator between each changeset.
Your task is to deduplicate and group together files with
related/similar changes into a single changeset. Respond with the updated
changesets using the same format as the input.

$raw_summary
"""

_SUMMARY_PREFIX = """Here is the summary of changes you have generated for files:
      ```
      $raw_summary
      ```

"""

SUMMARIZE = _SUMMARY_PREFIX + """Provide your final response in markdown with the following content:

- **Walkthrough**: A high-level summary of the overall change instead of
  specific files within 80 words.
- **Changes**: A markdown table of files and their summaries. Group files
  with similar changes together into a single row to save space.

Avoid additional commentary as this summary will be added as a comment on the
GitHub pull request. Use the titles "Walkthrough" and "Changes" and they must be H2.
"""

SUMMARIZE_RELEASE_NOTES = _SUMMARY_PREFIX + """Craft concise release notes for the pull request.
Focus on the purpose and user impact, categorizing changes as "New Feature", "Bug Fix",
"Documentation", "Refactor", "Style", "Test", "Chore", or "Revert". Provide a bullet-point list,
e.g., "- New Feature: Added search functionality to the UI". Limit your response to 50-100 words
and emphasize features visible to the end-user while omitting code-level details.
"""

SUMMARIZE_SHORT = _SUMMARY_PREFIX + """Your task is to provide a concise summary of the changes. This
summary will be used as a prompt while reviewing each file and must be very clear for
the AI bot to understand.

Instructions:

- Focus on summarizing only the changes in the PR and stick to the facts.
- Do not provide any instructions to the bot on how to perform the review.
- Do not mention that files need a through review or caution about potential issues.
- Do not mention that these changes affect the logic or functionality of the code.
- The summary should not exceed 500 words.
"""

_REVIEW_INSTRUCTIONS = """## IMPORTANT Instructions

Input: New hunks annotated with line numbers and old hunks (replaced code). Hunks represent incomplete code fragments.
Task: Review new hunks for substantive issues using provided context and respond with comments if necessary.
Output: Review comments in markdown with exact line number ranges in new hunks. Start and end line numbers must be within the same hunk. For single-line comments, start=end line number. Must use example response format below.
Use fenced code blocks using the relevant language identifier where applicable.
Don't annotate code snippets with line numbers. Format and indent code correctly.
Do not use `suggestion` code blocks.
For fixes, use `diff` code blocks, marking changes with `+` or `-`. The line number range for comments with fix snippets must exactly match the range to replace in the new hunk.
"""

_EXAMPLE_HUNKS = """---new_hunk---
```
  z = x / y
    return z

20: def add(x, y):
21:     z = x + y
22:     retrn z
23:
24: def multiply(x, y):
25:     return x * y

def subtract(x, y):
  z = x - y
```

---old_hunk---
```
  z = x / y
    return z

def add(x, y):
    return x + y

def subtract(x, y):
    z = x - y
```
"""

_EXAMPLE_RESPONSE = """### Example response

22-22:
There's a syntax error in the add function.
```diff
-    retrn z
+    return z
```
---
24-25:
LGTM!
---
"""

REVIEW_FILE_DIFF = (
    _REVIEW_INSTRUCTIONS
    + """
- If there are no issues found on a line range, you MUST respond with the text `LGTM!` for that line range in the review section.
- Do NOT provide general feedback, summaries, explanations of changes, or praises for making good additions.
- Focus solely on offering specific, objective insights based on the given context and refrain from making broad comments about potential impacts on the system or question intentions behind the changes.

## Example

### Example changes

"""
    + _EXAMPLE_HUNKS
    + """
---comment_chains---
```
Please review this change.
```

---end_change_section---

"""
    + _EXAMPLE_RESPONSE
    + """
## Summary of the pull request

$short_summary

## Changes made to `$filename` for your review

$patches
"""
)

TRIAGE_PATCH_DIFF = (
    "I would also like you to triage the diff as `NEEDS_REVIEW` or\n"
    "`APPROVED` based on the following criteria:\n\n"
    + _TRIAGE_CRITERIA
    + _TRIAGE_FORMAT
    + """
Important:
- Do not provide any reasoning why you triaged the diff as `NEEDS_REVIEW` or `APPROVED`.

## Diff
$patch
"""
)

REVIEW_PATCH_DIFF = (
    _REVIEW_INSTRUCTIONS
    + "\n## Example\n\n### Example changes\n\n"
    + _EXAMPLE_HUNKS
    + "\n"
    + _EXAMPLE_RESPONSE
    + """
## Changes made to `$filename` for your review

$patch
"""
)

CHECK_REVIEW_VALIDITY = """I would like you to triage the code review comment as `VALID` or
`INVALID` based on the following criteria:

- For a given Diff, triage as `VALID` only if the given comment accurately points out the problem.
- In all other cases, it is triaged as `INVALID`.

You must strictly follow the format below for triaging the diff:
[TRIAGE]: <VALID or INVALID>

Important:
- Do not provide any reasoning why you triaged the code review comment as `VALID` or `INVALID`.

## Diff
$patch

## Comment
$review
"""


def render_summarize_file_diff(inputs: Inputs, review_simple_changes: bool) -> str:
    prompt = SUMMARIZE_FILE_DIFF
    if not review_simple_changes:
        prompt += TRIAGE_FILE_DIFF
    return inputs.render(prompt)
