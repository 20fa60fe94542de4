"""Language guessing for transcripts when the profile sets none."""

import re

SPANISH = "es-AR"
ENGLISH = "en-US"

SPANISH_WORDS = frozenset("""
de la que el en y a los un ser se no haber por con su para como estar
tener le lo todo pero más hacer o poder decir este ir otro ese si me ya
ver porque dar cuando él muy sin vez mucho saber qué sobre mi alguno mismo
yo también hasta año dos querer entre así primero desde grande eso ni nos
llegar pasar tiempo ella uno bien poco deber entonces donde ahora parte vida
quedar siempre creer hablar llevar dejar nada cada seguir parecer nuevo encontrar
""".split())

ENGLISH_WORDS = frozenset("""
the be to of and a in that have i it for not on with he as you
do at this but his by from they we say her she or an will my one
all would there their what so up out if about who get which go me
when make can like time no just him know take people into year your good
some could them see other than then now look only come its over think also
""".split())

_PUNCTUATION = re.compile(r"[.,?¡¿!]")


def detect_language(text: str) -> str:
    """Guess es-AR or en-US from common-word frequency.

    A language wins when it has the higher share of recognised words and
    that share exceeds 10%. Otherwise ties go to Spanish.
    """
    words = _PUNCTUATION.sub("", text.lower()).split()
    if not words:
        return ENGLISH

    spanish = sum(1 for word in words if word in SPANISH_WORDS)
    english = sum(1 for word in words if word in ENGLISH_WORDS)
    spanish_ratio = spanish / len(words)
    english_ratio = english / len(words)

    if spanish_ratio > english_ratio and spanish_ratio > 0.1:
        return SPANISH
    if english_ratio > spanish_ratio and english_ratio > 0.1:
        return ENGLISH
    return SPANISH if spanish >= english else ENGLISH
