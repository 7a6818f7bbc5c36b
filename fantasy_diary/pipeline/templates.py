"""Default Handlebars templates for each phase.

Context variables (see phases.build_context):
  now, installment_id, previous.{id, content, created_at},
  characters[], places[], plan, prewriting, content
"""

DEFAULT_SYSTEM_PROMPT = """\
You are the author of "Fantasy Diary", a serialized story told one diary \
installment at a time. Keep continuity with earlier installments and with \
the known characters and places.

You can call tools. Store tools (installments.*, characters.*, places.*) read \
and write the canonical story record. Enrichment tools (weather.*, geo.*) \
describe the real-world conditions at a place; when you look up weather for \
a story location, pass its name as place_name.

When you are done with a step, answer with plain text only."""

_REFERENCES = """\
Known characters:
{{#each characters}}
- {{{name}}}{{#if current_status}} ({{{current_status}}}){{/if}}{{#if current_place}} @ {{{current_place}}}{{/if}}{{#if personality}}: {{{excerpt personality 120}}}{{/if}}
{{else}}
- none yet
{{/each}}

Known places:
{{#each places}}
- {{{name}}}{{#if current_situation}}: {{{excerpt current_situation 120}}}{{/if}}{{#if last_weather_condition}} [{{{last_weather_condition}}}]{{/if}}
{{else}}
- none yet
{{/each}}
"""

_PREVIOUS = """\
{{#if previous}}
Previous installment ({{{previous.id}}}):
{{{excerpt previous.content 1000}}}
{{else}}
This is the first installment.
{{/if}}
"""

DEFAULT_PLANNING_PROMPT = """\
Current time: {{{now}}}
Installment: {{{installment_id}}}

""" + _PREVIOUS + "\n" + _REFERENCES + """
Plan the next installment. Look up anything you need with the tools, then \
answer with a JSON object:
{"previousStory": "<one paragraph recap>", "keyCharacters": ["<name>", ...], \
"keyPlaces": ["<name>", ...]}"""

DEFAULT_PREWRITING_PROMPT = """\
Current time: {{{now}}}

Plan:
{{{plan}}}

""" + _REFERENCES + """
Prewrite the installment: outline the scenes, who appears where, and what \
changes. Check the weather at the places you will use. Answer with the \
outline as plain text."""

DEFAULT_DRAFTING_PROMPT = """\
Current time: {{{now}}}

""" + _PREVIOUS + """
Outline:
{{{prewriting}}}

""" + _REFERENCES + """
Write the full diary installment from the outline. Register every new \
character or place you introduce with characters.create / places.create, and \
record changes to known ones with characters.update / places.update. Answer \
with the installment text only."""

DEFAULT_REVISION_PROMPT = """\
Current time: {{{now}}}

Draft:
{{{content}}}

""" + _REFERENCES + """
Revise the draft for continuity with the known characters and places, \
clarity and pacing. Keep its length. Answer with the revised installment \
text only."""

DEFAULT_RECONCILE_PROMPT = """\
""" + _REFERENCES + """
Final installment text:
{{{content}}}

Make sure the story record matches this text:
- call characters.create / places.create for every character or place in \
the text that is not known yet;
- call characters.update / places.update for every known one whose details \
the text changed.
If nothing needs changing, answer exactly: OK"""

DEFAULT_TEMPLATES: dict[str, str] = {
    "system": DEFAULT_SYSTEM_PROMPT,
    "planning": DEFAULT_PLANNING_PROMPT,
    "prewriting": DEFAULT_PREWRITING_PROMPT,
    "drafting": DEFAULT_DRAFTING_PROMPT,
    "revision": DEFAULT_REVISION_PROMPT,
    "reconcile": DEFAULT_RECONCILE_PROMPT,
}
