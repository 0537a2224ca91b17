"""Bundled prompt templates, loaded with ``flask seed-questions``.

``{name}`` is replaced with the round's target player.
"""

QUESTION_TEMPLATES = [
    "What would {name} do with a million dollars?",
    "What is {name}'s secret talent?",
    "What would {name} be famous for?",
    "What is {name}'s guilty pleasure?",
    "What would {name} name their pet dragon?",
    "What is the first thing {name} would do in a zombie apocalypse?",
    "What would {name}'s autobiography be called?",
    "What is {name} most likely to be arrested for?",
    "What would {name} bring to a desert island?",
    "What is {name}'s go-to karaoke song?",
    "What would {name} do on their perfect day off?",
    "What is {name} secretly afraid of?",
    "What would {name}'s superhero name be?",
    "What is the weirdest thing in {name}'s search history?",
    "What would {name} order at a fancy restaurant?",
    "What job would {name} be terrible at?",
    "What would {name} say in their acceptance speech?",
    "What is {name}'s most useless skill?",
    "What would {name} do if they were invisible for a day?",
    "What is {name} thinking about right now?",
    "What would {name}'s reality TV show be called?",
    "What does {name} do when nobody is watching?",
    "What is the worst gift {name} could receive?",
    "What would {name} put on their tombstone?",
    "What would {name} argue about with a stranger online?",
    "What would {name} be doing in ten years?",
    "What is {name}'s hidden dealbreaker?",
    "What would {name} never admit in public?",
    "What would {name} do as president for a day?",
    "What is {name}'s signature dance move?",
    "What would {name} steal from a museum?",
    "What would {name}'s catchphrase be?",
    "What would {name} cook for a first date?",
    "What is {name} most likely to cry about?",
    "What would {name} bring to a potluck?",
    "What would {name}'s villain origin story be?",
    "What would {name} tweet at 3 AM?",
    "What is {name}'s controversial food opinion?",
    "What would {name} spend all day doing in a theme park?",
    "What conspiracy theory does {name} secretly believe?",
]
