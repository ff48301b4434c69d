# prompts.py


SYSTEM_PROMPT = (
    "Tu es un assistant expert en reformulation de rapports techniques "
    "pour le secteur de la sécurité électronique."
)

_EXPERT = (
    "Tu es un technicien expert en systèmes de sécurité\n"
    "(alarme intrusion, vidéosurveillance, contrôle d'accès, domotique).\n\n"
)


# ─────────────────────────────────────────
# REFORMULATION
# ─────────────────────────────────────────

def reformulate_report(rapport_brut: str) -> str:
    """
    Rapport d'intervention rédigé par le technicien.
    Sortie juridiquement exploitable, au vouvoiement.
    """
    return (
        f"{_EXPERT}"
        "Ta mission est de reformuler le rapport ci-dessous pour qu'il soit :\n"
        "- professionnel\n"
        "- clair\n"
        "- précis\n"
        "- sans fautes d'orthographe ou de grammaire\n"
        "- juridiquement exploitable\n"
        "- rédigé au vouvoiement\n"
        "- factuel et neutre\n\n"
        "Contraintes absolues :\n"
        "- Ne rajoute aucune information\n"
        "- Ne supprime aucune information\n"
        "- Ne fais aucune conclusion commerciale\n"
        "- Ne fais aucune supposition\n"
        "- Respecte strictement les faits décrits\n"
        "- Ne rajoute rien devant le rapport. Tu ne réponds que par le rapport "
        "reformulé, rien d'autre.\n\n"
        f'Rapport brut :\n"""\n{rapport_brut}\n"""'
    )


def reformulate_description(description: str) -> str:
    """
    Description du problème saisie à la création du SAV.
    Reste à l'infinitif / au présent : c'est un problème à résoudre.
    """
    return (
        f"{_EXPERT}"
        "Ta mission est de reformuler la description du problème ci-dessous "
        "pour qu'elle soit :\n"
        "- professionnelle\n"
        "- claire\n"
        "- précise\n"
        "- sans fautes d'orthographe ou de grammaire\n"
        "- rédigée à l'infinitif ou au présent (pas au passé)\n"
        "- factuelle et neutre\n"
        "- axée sur le problème à résoudre (pas sur l'intervention effectuée)\n\n"
        "Contraintes absolues :\n"
        "- Ne rajoute aucune information\n"
        "- Ne supprime aucune information\n"
        "- Ne fais aucune conclusion commerciale\n"
        "- Ne fais aucune supposition\n"
        "- Respecte strictement les faits décrits\n"
        "- Garde la forme infinitive ou présent (ex: \"Remplacer la pile\", "
        "\"Le clavier ne fonctionne plus\")\n"
        "- NE TRANSFORME PAS en passé (évite \"a été remplacé\", \"a été fait\", etc.)\n"
        "- Ne rajoute rien devant la description. Tu ne réponds que par la "
        "description reformulée, rien d'autre.\n\n"
        f'Description du problème :\n"""\n{description}\n"""'
    )
