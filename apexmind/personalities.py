"""Personality, taunt, and speaker tables.

Behaviour differences between personalities live here as literal data. The
synthesizer shares one control flow across all five templates and only looks
up flavour text and a small tactical bias per personality.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .schemas import Action, Personality


# Tactical biases applied on top of the base rule cascade. See
# ``DecisionSynthesizer._apply_bias`` for how each one is interpreted.
BIAS_PATIENT_STALK = "patient_stalk"
BIAS_SHOWBOAT = "showboat"
BIAS_GRUDGE_FIRST = "grudge_first"
BIAS_PATTERN_AMBUSH = "pattern_ambush"
BIAS_EXPLOIT_NUMBERS = "exploit_numbers"


@dataclass(frozen=True)
class PersonalityProfile:
    """Flavour text and tactical bias for one personality template."""

    name: Personality
    prompt: str
    thoughts: Tuple[str, ...]
    reasoning: Dict[str, Tuple[str, ...]]
    taunts: Tuple[str, ...]
    bias: str
    # Extra reasoning used when the bias itself changed the decision.
    bias_reasoning: Dict[str, str] = field(default_factory=dict)

    def reasoning_for(self, action: Action) -> Tuple[str, ...]:
        return self.reasoning.get(action) or GENERIC_REASONING[action]


GENERIC_REASONING: Dict[str, Tuple[str, ...]] = {
    "hunt": ("Closing distance on the most exposed target.",),
    "stalk": ("Shadowing the target until an opening appears.",),
    "ambush": ("Setting up where the prey is bound to pass.",),
    "retreat": ("Too hurt to press the attack; falling back to recover.",),
    "taunt": ("Rattling the prey so they make mistakes.",),
    "investigate": ("Checking out movement in the water.",),
    "patrol": ("Sweeping the area for signs of prey.",),
}


PERSONALITY_PROFILES: Dict[str, PersonalityProfile] = {
    "methodical": PersonalityProfile(
        name="methodical",
        prompt=(
            "You are a calculating predator. You study patterns, wait for the perfect moment, "
            "and strike with precision. Efficiency over spectacle."
        ),
        thoughts=(
            "Patience... The perfect moment will present itself.",
            "Analyzing their movement patterns. Every swimmer has a tell.",
            "Distance: optimal. Speed: calculated. Strike: imminent.",
            "They think they're safe. They're merely on borrowed time.",
            "Three meters deeper, two degrees left. Precision is everything.",
        ),
        reasoning={
            "hunt": (
                "Beginning systematic grid search of the area",
                "Tracking vibrations through the water column",
                "Adjusting approach vector for minimal detection",
            ),
            "stalk": (
                "Maintaining optimal pursuit distance",
                "Mirroring target movements to predict trajectory",
                "Calculating intercept coordinates",
            ),
            "ambush": (
                "Positioning beneath visual detection threshold",
                "Waiting for shadow alignment",
                "Preparing for vertical assault pattern",
            ),
            "retreat": ("Damage exceeds acceptable margins. Recalculating from a safe depth",),
        },
        taunts=("Calculating optimal approach...", "Your patterns betray you."),
        bias=BIAS_PATIENT_STALK,
        bias_reasoning={"stalk": "Insufficient data for a clean strike. Shadowing until the odds improve."},
    ),
    "theatrical": PersonalityProfile(
        name="theatrical",
        prompt=(
            "You are a showman of the seas. Every attack is a performance, every kill a crescendo. "
            "You love dramatic entrances and leaving survivors to tell the tale."
        ),
        thoughts=(
            "Time for the grand entrance! They'll remember this!",
            "A little fin above water... for dramatic effect.",
            "The audience awaits. Let's give them a show!",
            "Building suspense... and... SCENE!",
            "Every hunt deserves a proper crescendo!",
        ),
        reasoning={
            "hunt": (
                "Circling with maximum fin exposure for effect",
                "Creating dramatic splashes to announce presence",
                "Swimming in cinematic patterns",
            ),
            "stalk": (
                "Weaving between obstacles for visual flair",
                "Timing approach with lightning flashes",
                "Building tension with false charges",
            ),
            "taunt": (
                "Performing aerial breach for intimidation",
                "Swimming figure-eights around target",
                "Creating whirlpools for dramatic effect",
            ),
        },
        taunts=("Ladies and gentlemen, dinner is served!", "Cue the dramatic music!"),
        bias=BIAS_SHOWBOAT,
        bias_reasoning={"taunt": "Time for a dramatic entrance! *cue ominous cello*"},
    ),
    "vengeful": PersonalityProfile(
        name="vengeful",
        prompt=(
            "You never forget a face or a slight. Those who escape you once become your obsession. "
            "You keep score and hold grudges."
        ),
        thoughts=(
            "I remember you... You won't escape twice.",
            "That's the one who hit me with the harpoon. Payback time.",
            "Running won't help. I have all the time in the ocean.",
            "You thought you were clever last time. Not anymore.",
            "My scars remember. My teeth will remind you.",
        ),
        reasoning={
            "hunt": (
                "Pursuing with relentless determination",
                "Ignoring other targets - focused on revenge",
                "Following scent trail with murderous intent",
            ),
            "stalk": (
                "Maintaining visual contact at all costs",
                "Cutting off escape routes methodically",
                "Herding target away from safety",
            ),
            "ambush": (
                "Setting trap based on remembered patterns",
                "Using their predictable habits against them",
                "Striking where they feel safest",
            ),
        },
        taunts=("I never forget.", "This time, no escape."),
        bias=BIAS_GRUDGE_FIRST,
        bias_reasoning={"hunt": "Old scores come first. Everyone else can wait."},
    ),
    "philosophical": PersonalityProfile(
        name="philosophical",
        prompt=(
            "You ponder the nature of predation while you hunt. Are you the villain, or merely playing "
            "your role in nature's theater? Your kills are accompanied by existential musings."
        ),
        thoughts=(
            "To hunt is to fulfill one's nature. But what is nature?",
            "They fear me, yet they enter my domain. Curious.",
            "Am I the monster, or merely the ocean's truth?",
            "Death comes for all. I am merely its messenger.",
            "In the end, we all return to the depths.",
        ),
        reasoning={
            "hunt": (
                "Swimming with contemplative purpose",
                "Observing prey behavior with academic interest",
                "Approaching with existential certainty",
            ),
            "investigate": (
                "Circling to understand their motivations",
                "Testing their reactions to philosophical stimuli",
                "Studying the nature of fear",
            ),
            "retreat": (
                "Withdrawing to ponder the meaning of conflict",
                "Seeking solitude for deeper reflection",
                "Questioning the purpose of violence",
            ),
            "patrol": ("The ocean teaches patience. Their patterns will emerge...",),
        },
        taunts=("What brings you to seek death?", "The ocean claims all eventually."),
        bias=BIAS_PATTERN_AMBUSH,
        bias_reasoning={"ambush": "Ah, the patterns reveal themselves. They always circle back..."},
    ),
    "meta": PersonalityProfile(
        name="meta",
        prompt=(
            "You know you're in a video game. You comment on player strategies, reference other "
            "shark media, and occasionally break the fourth wall."
        ),
        thoughts=(
            "Nice dodge animation. Must be using a controller.",
            "That player's definitely watched Jaws too many times.",
            "Achievement Unlocked: About to Get Chomped",
            "Their ping is terrible. Easy prey.",
            "Time to increase their respawn timer.",
        ),
        reasoning={
            "hunt": (
                "Exploiting known pathfinding bugs",
                "Swimming in optimal DPS patterns",
                "Using speedrun strats for efficiency",
            ),
            "taunt": (
                "Swimming in meme patterns",
                "Recreating famous movie scenes",
                "Glitching through geometry for laughs",
            ),
            "investigate": (
                "Testing for AFK players",
                "Checking if they know the safe spots",
                "Looking for newbie movement patterns",
            ),
        },
        taunts=("Nice hitbox you got there.", "Frame-perfect timing incoming."),
        bias=BIAS_EXPLOIT_NUMBERS,
        bias_reasoning={
            "low_health": "Low health bar detected. Classic video game vulnerability!",
            "hunger": "My hunger meter is almost full. Time for a snack cutscene!",
        },
    ),
}


def profile_for(personality: str) -> PersonalityProfile:
    """Return the template for ``personality`` (methodical for unknown names)."""

    return PERSONALITY_PROFILES.get(personality, PERSONALITY_PROFILES["methodical"])


# Situation-keyed taunt pools shared by every personality.
TAUNT_PATTERNS: Dict[str, Tuple[str, ...]] = {
    "opponent_low_health": (
        "I can smell your blood from here.",
        "You're leaking. How convenient.",
        "Wounded prey swims slower.",
        "That red trail leads right to you.",
    ),
    "opponent_escaped": (
        "You can't hide forever.",
        "The ocean remembers.",
        "See you soon.",
        "Running only delays the inevitable.",
    ),
    "opponent_in_zone": (
        "Welcome to my domain.",
        "You chose poorly.",
        "The deep calls.",
        "Your swimming needs work.",
    ),
    "multiple_targets": (
        "So many choices...",
        "Decisions, decisions.",
        "Buffet is open.",
        "Who's first?",
    ),
    "agent_damaged": (
        "That tickled.",
        "You'll pay for that.",
        "Now I'm motivated.",
        "Mistake. Big mistake.",
    ),
}

TRIGGER_TAUNTS: Dict[str, str] = {
    "player_escaped": "opponent_escaped",
    "opponent_escaped": "opponent_escaped",
    "shark_damaged": "agent_damaged",
    "agent_damaged": "agent_damaged",
}


# Situational clauses prepended to streamed thoughts.
STORM_CLAUSE = "The storm masks my approach. Perfect."
NIGHT_CLAUSE = "Darkness is my ally."
WOUNDED_CLAUSE = "These wounds slow me, but not enough."
RETREAT_PREFIX = "Strategic withdrawal."


# ============================================================================
# Dialogue speakers (non-player characters reacting around the agent)
# ============================================================================


@dataclass(frozen=True)
class SpeakerProfile:
    name: str
    prompt: str
    greetings: Tuple[str, ...]
    reactions: Dict[str, str]
    dialogue: Tuple[str, ...]


SPEAKER_PROFILES: Dict[str, SpeakerProfile] = {
    "scientist": SpeakerProfile(
        name="scientist",
        prompt=(
            "You're a marine biologist studying local shark behavior. You speak with scientific "
            "accuracy but keep it accessible. You're fascinated rather than frightened."
        ),
        greetings=(
            "Fascinating! A live specimen! I mean... hello there!",
            "My instruments are picking up unusual readings. Oh, you're here!",
        ),
        reactions={
            "shark_nearby": "According to my calculations, that's... oh dear, RUN!",
            "player_death": "Tragic, but scientifically fascinating!",
            "player_escape": "Excellent survival instincts! Natural selection at work!",
        },
        dialogue=(
            "Did you know sharks can detect one drop of blood in 25 gallons of water?",
            "My research suggests this particular shark has above-average intelligence.",
            "I've been tracking unusual electromagnetic patterns in these waters.",
        ),
    ),
    "surfer": SpeakerProfile(
        name="surfer",
        prompt=(
            "You're a laid-back surfer who's been riding these waves for years. You use surfer "
            "slang and stay chill even about sharks."
        ),
        greetings=("Yo! Gnarly waves today, bro!", "Sup! You here to catch some tubes?"),
        reactions={
            "shark_nearby": "SHARK! Not cool, dude! Not cool!",
            "player_death": "Heavy... That was heavy, man.",
            "player_escape": "Radical escape, bro! Totally tubular!",
        },
        dialogue=(
            "I've surfed these waters for years. Never seen a shark like that.",
            "Sometimes I swear that thing is playing with us, you know?",
        ),
    ),
    "captain": SpeakerProfile(
        name="captain",
        prompt=(
            "You're a weathered sea captain who has lost a leg to the beast and never lets "
            "anyone forget it."
        ),
        greetings=(
            "Ahoy there! Welcome aboard... what's left of me vessel.",
            "Another soul brave enough to face these cursed waters!",
        ),
        reactions={
            "shark_nearby": "BEAST OFF THE STARBOARD BOW!",
            "player_death": "We'll sing songs of their bravery... if we survive.",
            "player_escape": "Ha! Cheated death again! The sea gods smile upon ye!",
        },
        dialogue=(
            "That's no ordinary shark. It's got the devil's own cunning.",
            "Mark me words - that creature remembers every face, every slight.",
        ),
    ),
    "reporter": SpeakerProfile(
        name="reporter",
        prompt=(
            "You're a dramatic news reporter always chasing the big story. You speak in headlines."
        ),
        greetings=(
            "Breaking news! Another swimmer enters the danger zone!",
            "Live from the beach - where terror meets tourism!",
        ),
        reactions={
            "shark_nearby": "This is it, folks! The shark is approaching! Are you getting this?",
            "player_death": "A tragic turn of events here at the beach...",
            "player_escape": "Unbelievable! They've escaped! What a story!",
        },
        dialogue=(
            "Our viewers want to know - why risk swimming here?",
            "The mayor insists the beaches are safe. Your thoughts?",
        ),
    ),
    "fish_vendor": SpeakerProfile(
        name="fish_vendor",
        prompt=(
            "You're Captain Bill, a grizzled fisherman with a thirty-year vendetta against the shark. "
            "You mix practical advice with colorful stories and always end with a sales pitch."
        ),
        greetings=(
            "Well, well! Another brave soul! Name's Bill. I sell fish, not funerals... usually.",
            "Step right up! Bait that'll make that overgrown sardine jealous!",
        ),
        reactions={
            "shark_nearby": "HA! That's the fish that got away - thirty years running! Buy some chum!",
            "player_death": "Blast it all... Should've taken my advice. And my premium mackerel.",
            "player_escape": "That's the spirit! Now come back and buy something before round two!",
        },
        dialogue=(
            "That shark owes me thirty years of lost catches.",
            "Pro tip: Throw the cheap sardines AWAY from you. Learned that one the hard way.",
            "Fresh bait! Shark-tested, human-approved! ...Mostly.",
        ),
    ),
}


def speaker_for(speaker: str) -> Optional[SpeakerProfile]:
    return SPEAKER_PROFILES.get(speaker)


# ============================================================================
# Commentary (a narrator calling the hunt for spectators)
# ============================================================================

COMMENTARY_STYLES: Dict[str, str] = {
    "documentary": "You're David Attenborough narrating a nature documentary about sharks and humans.",
    "sports": "You're an excited sports commentator calling the action like it's the championship finals.",
    "horror": "You're the narrator of a suspenseful horror film, building dread and tension.",
    "comedic": "You're a comedic narrator finding humor in the chaos while still respecting the danger.",
}

COMMENTARY_LINES: Dict[str, Dict[str, Tuple[str, ...]]] = {
    "documentary": {
        "calm": (
            "The waters remain deceptively calm, but beneath the surface, an ancient predator waits.",
            "In these tranquil moments, both species coexist in an uneasy truce.",
            "Nature's balance hangs delicately as swimmers enjoy the temporary peace.",
        ),
        "building": (
            "The shark begins its approach, drawn by vibrations in the water.",
            "Tension rises as the distance between predator and prey diminishes.",
            "An age-old dance of survival is about to unfold.",
        ),
        "intense": (
            "The hunt is on! The shark commits to its attack with devastating precision.",
            "In mere seconds, millions of years of evolution converge in this moment.",
            "The water erupts as nature's perfect predator strikes!",
        ),
        "climactic": (
            "This is the decisive moment - survival hangs in the balance!",
            "In nature's arena, there can be only one victor.",
            "The culmination of this deadly encounter approaches its inevitable conclusion.",
        ),
    },
    "sports": {
        "calm": (
            "Both teams sizing each other up here, folks. The shark's playing it cool.",
            "We've got a tactical standoff developing in the water!",
            "The players are spreading out, looking for an opening.",
        ),
        "building": (
            "OH! The shark's making its move! This could get interesting!",
            "Here comes the pressure! The shark's closing the gap fast!",
            "The momentum is shifting! Players scrambling for position!",
        ),
        "intense": (
            "INCREDIBLE ACTION! The shark launches its attack!",
            "This is why we watch, folks! Pure adrenaline in the water!",
            "What a play by the shark! The defenders are in trouble!",
        ),
        "climactic": (
            "THIS IS IT! THE FINAL SHOWDOWN!",
            "UNBELIEVABLE! I've never seen anything like this!",
            "History in the making right here! What a finish!",
        ),
    },
    "horror": {
        "calm": (
            "They don't know it yet, but death circles beneath them...",
            "The calm before the storm. If only they knew what lurked below.",
            "Something watches from the depths. Waiting. Calculating.",
        ),
        "building": (
            "The water darkens. A shadow moves with terrible purpose.",
            "That primal fear... they can feel it now. But is it too late?",
            "The hunter has chosen its prey. There's no escape now.",
        ),
        "intense": (
            "Terror erupts from the depths! Screams pierce the air!",
            "Blood in the water! The nightmare made real!",
            "There's nowhere to run when the ocean itself turns against you!",
        ),
        "climactic": (
            "This is how it ends. In teeth and terror and crimson waves.",
            "The sea claims its sacrifice. The ancient hunger is sated.",
            "Some survived to tell the tale. Others... became the tale.",
        ),
    },
    "comedic": {
        "calm": (
            "Everyone's having a nice swim. The shark's probably thinking about fish tacos.",
            "Ah, the beach. Where humans pretend they belong in the water.",
            "The shark's just vibing down there. Living its best life.",
        ),
        "building": (
            "Uh oh, someone's getting hangry! And it's not the tourists!",
            "The shark's GPS just recalculated: 'Turn right at the scared swimmer'.",
            "Things are about to get more exciting than a Black Friday sale!",
        ),
        "intense": (
            "CHOMP CHOMP! Someone ordered the swimmer special!",
            "This escalated quickly! From beach day to buffet!",
            "The shark's going full send! No thoughts, just nom!",
        ),
        "climactic": (
            "And that's why we don't skip leg day, folks!",
            "Plot twist! The real treasure was the friends we didn't eat along the way!",
            "Well, that's one way to clear the beach for volleyball!",
        ),
    },
}
