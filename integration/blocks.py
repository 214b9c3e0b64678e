"""
blocks.py - Block vocabulary and harvesting rules for the voxel world.

This module defines the block and entity categories the engine reasons about:
- Passable, liquid and transparent blocks (movement and line of sight)
- Stone-family, ore and log blocks (perception and mining)
- Instant-break vegetation (cleared while walking)
- Placeable building blocks and functional blocks (placement)
- Tool requirements and drops (capability checks)

Block names are bare identifiers ("stone", not "minecraft:stone").
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple


def normalize(name: Optional[str]) -> str:
    """Strip the namespace prefix from a block or item identifier."""
    if not name:
        return ""
    return name.split(":", 1)[1] if ":" in name else name


AIR_BLOCKS = {"air", "cave_air", "void_air"}

LIQUID_BLOCKS = {"water", "flowing_water", "lava", "flowing_lava"}
WATER_BLOCKS = {"water", "flowing_water", "bubble_column"}
LAVA_BLOCKS = {"lava", "flowing_lava"}

# Blocks that can be walked through
NON_SOLID_BLOCKS = AIR_BLOCKS | LIQUID_BLOCKS | {
    "short_grass", "grass", "tall_grass", "fern", "large_fern", "dead_bush",
    "dandelion", "poppy", "torch", "wall_torch", "snow", "vine", "vines",
    "seagrass", "tall_seagrass", "kelp", "kelp_plant", "sugar_cane",
    "cobweb", "moss_carpet", "sweet_berry_bush", "fire", "rail",
    "bubble_column",
}

# Blocks a sight line passes through
TRANSPARENT_BLOCKS = AIR_BLOCKS | LIQUID_BLOCKS | {
    "glass", "glass_pane", "tinted_glass", "ice", "barrier", "torch",
    "wall_torch", "short_grass", "grass", "tall_grass", "fern", "large_fern",
    "dead_bush", "dandelion", "poppy", "vine", "vines", "seagrass",
    "tall_seagrass", "kelp", "kelp_plant", "sugar_cane", "snow", "rail",
    "ladder", "cobweb", "flower_pot", "oak_leaves", "birch_leaves",
    "spruce_leaves", "jungle_leaves", "acacia_leaves", "dark_oak_leaves",
    "mangrove_leaves", "cherry_leaves", "azalea_leaves",
}

STONE_FAMILY = {
    "stone", "cobblestone", "granite", "diorite", "andesite", "deepslate",
    "cobbled_deepslate", "tuff",
}

LEAF_BLOCKS = {
    "oak_leaves", "birch_leaves", "spruce_leaves", "jungle_leaves",
    "acacia_leaves", "dark_oak_leaves", "mangrove_leaves", "cherry_leaves",
    "azalea_leaves", "flowering_azalea_leaves",
}

LOG_BLOCKS = {
    "oak_log", "birch_log", "spruce_log", "jungle_log", "acacia_log",
    "dark_oak_log", "mangrove_log", "cherry_log",
}

ORE_BLOCKS = {
    "coal_ore", "iron_ore", "copper_ore", "gold_ore", "redstone_ore",
    "lapis_ore", "diamond_ore", "emerald_ore", "deepslate_coal_ore",
    "deepslate_iron_ore", "deepslate_copper_ore", "deepslate_gold_ore",
    "deepslate_redstone_ore", "deepslate_lapis_ore", "deepslate_diamond_ore",
    "deepslate_emerald_ore",
}

# Broken in one hit and cleared while walking
INSTANT_BREAK_BLOCKS = LEAF_BLOCKS | {
    "tall_grass", "grass", "short_grass", "fern", "large_fern", "dead_bush",
    "sweet_berry_bush", "vine", "vines", "kelp", "kelp_plant", "seagrass",
    "tall_seagrass", "cobweb", "moss_carpet", "dandelion", "poppy",
    "sugar_cane",
}

UNBREAKABLE_BLOCKS = {
    "bedrock", "barrier", "command_block", "end_portal_frame", "end_portal",
    "nether_portal",
}

# Blocks usable for pillaring and staircases
PILLAR_BLOCKS = [
    "dirt", "cobblestone", "stone", "deepslate", "cobbled_deepslate",
    "netherrack", "oak_planks", "spruce_planks", "birch_planks", "gravel",
    "sand",
]

# Blocks placed in front of the agent and remembered as landmarks
FUNCTIONAL_BLOCKS = {
    "crafting_table", "furnace", "blast_furnace", "smoker", "chest",
    "barrel", "anvil", "enchanting_table", "brewing_stand", "smithing_table",
    "stonecutter", "loom", "cartography_table", "fletching_table",
    "grindstone", "campfire", "bed", "white_bed", "red_bed", "torch",
}

HOSTILE_MOBS = {
    "zombie", "skeleton", "creeper", "spider", "cave_spider", "enderman",
    "witch", "phantom", "drowned", "husk", "stray", "pillager", "vindicator",
    "ravager", "evoker", "vex", "blaze", "ghast", "wither_skeleton", "slime",
    "magma_cube", "silverfish", "zombie_villager",
}

TOOL_TIERS = ["none", "wooden", "stone", "iron", "golden", "diamond", "netherite"]

# Tier rank used for comparisons; golden tools harvest like wooden ones
_TIER_RANK = {"none": 0, "wooden": 1, "golden": 1, "stone": 2, "iron": 3,
              "diamond": 4, "netherite": 5}


@dataclass
class BlockProperties:
    """
    Harvest properties for a block.

    Attributes:
        dig_time: Seconds to break with a suitable tool
        tool: Tool class that harvests it ('pickaxe', 'axe', 'shovel', 'none')
        min_tier: Minimum tool tier for a drop ('none' if any tool works)
        drops: List of (item, count) tuples produced when harvested
    """
    dig_time: float
    tool: str
    min_tier: str
    drops: List[Tuple[str, int]]


BLOCK_PROPERTIES: Dict[str, BlockProperties] = {
    "dirt": BlockProperties(0.5, 'shovel', 'none', [('dirt', 1)]),
    "grass_block": BlockProperties(0.6, 'shovel', 'none', [('dirt', 1)]),
    "sand": BlockProperties(0.5, 'shovel', 'none', [('sand', 1)]),
    "gravel": BlockProperties(0.6, 'shovel', 'none', [('gravel', 1)]),
    "clay": BlockProperties(0.6, 'shovel', 'none', [('clay_ball', 4)]),
    "stone": BlockProperties(0.75, 'pickaxe', 'wooden', [('cobblestone', 1)]),
    "cobblestone": BlockProperties(1.0, 'pickaxe', 'wooden', [('cobblestone', 1)]),
    "granite": BlockProperties(0.75, 'pickaxe', 'wooden', [('granite', 1)]),
    "diorite": BlockProperties(0.75, 'pickaxe', 'wooden', [('diorite', 1)]),
    "andesite": BlockProperties(0.75, 'pickaxe', 'wooden', [('andesite', 1)]),
    "deepslate": BlockProperties(1.5, 'pickaxe', 'wooden', [('cobbled_deepslate', 1)]),
    "netherrack": BlockProperties(0.2, 'pickaxe', 'wooden', [('netherrack', 1)]),
    "coal_ore": BlockProperties(1.5, 'pickaxe', 'wooden', [('coal', 1)]),
    "iron_ore": BlockProperties(1.5, 'pickaxe', 'stone', [('raw_iron', 1)]),
    "copper_ore": BlockProperties(1.5, 'pickaxe', 'stone', [('raw_copper', 2)]),
    "lapis_ore": BlockProperties(1.5, 'pickaxe', 'stone', [('lapis_lazuli', 4)]),
    "gold_ore": BlockProperties(1.5, 'pickaxe', 'iron', [('raw_gold', 1)]),
    "redstone_ore": BlockProperties(1.5, 'pickaxe', 'iron', [('redstone', 4)]),
    "diamond_ore": BlockProperties(1.5, 'pickaxe', 'iron', [('diamond', 1)]),
    "emerald_ore": BlockProperties(1.5, 'pickaxe', 'iron', [('emerald', 1)]),
    "obsidian": BlockProperties(9.4, 'pickaxe', 'iron', [('obsidian', 1)]),
    "crafting_table": BlockProperties(1.25, 'axe', 'none', [('crafting_table', 1)]),
    "furnace": BlockProperties(1.75, 'pickaxe', 'wooden', [('furnace', 1)]),
    "chest": BlockProperties(1.25, 'axe', 'none', [('chest', 1)]),
}

for _log in LOG_BLOCKS:
    BLOCK_PROPERTIES[_log] = BlockProperties(1.0, 'axe', 'none', [(_log, 1)])
for _planks in ("oak_planks", "spruce_planks", "birch_planks"):
    BLOCK_PROPERTIES[_planks] = BlockProperties(1.0, 'axe', 'none', [(_planks, 1)])
for _ore in ORE_BLOCKS:
    if _ore.startswith("deepslate_"):
        _base = BLOCK_PROPERTIES[_ore[len("deepslate_"):]]
        BLOCK_PROPERTIES[_ore] = BlockProperties(
            _base.dig_time * 1.5, 'pickaxe', _base.min_tier, list(_base.drops)
        )

# Fallback for blocks not listed above: quick to break, drops itself
_DEFAULT_PROPERTIES = BlockProperties(0.5, 'none', 'none', [])


def get_properties(name: str) -> BlockProperties:
    """Get harvest properties for a block name."""
    name = normalize(name)
    props = BLOCK_PROPERTIES.get(name)
    if props is not None:
        return props
    if name in INSTANT_BREAK_BLOCKS:
        return BlockProperties(0.05, 'none', 'none', [])
    return BlockProperties(_DEFAULT_PROPERTIES.dig_time, 'none', 'none', [(name, 1)])


def is_air(name: Optional[str]) -> bool:
    return normalize(name) in AIR_BLOCKS


def is_liquid(name: Optional[str]) -> bool:
    return normalize(name) in LIQUID_BLOCKS


def is_water(name: Optional[str]) -> bool:
    return normalize(name) in WATER_BLOCKS


def is_lava(name: Optional[str]) -> bool:
    return normalize(name) in LAVA_BLOCKS


def is_solid(name: Optional[str]) -> bool:
    """Check if a block is solid (entities cannot pass through)."""
    name = normalize(name)
    return bool(name) and name not in NON_SOLID_BLOCKS


def is_transparent(name: Optional[str]) -> bool:
    """Check if a sight line passes through a block."""
    return normalize(name) in TRANSPARENT_BLOCKS


def is_hostile(entity_type: Optional[str]) -> bool:
    return normalize(entity_type) in HOSTILE_MOBS


def tool_info(item_name: Optional[str]) -> Tuple[str, str]:
    """
    Split a held item into (tool class, tier).

    Args:
        item_name: Held item identifier (e.g., 'stone_pickaxe') or None

    Returns:
        Tuple of tool class ('pickaxe', 'axe', 'shovel', 'sword', 'none')
        and tier ('none', 'wooden', ...)
    """
    name = normalize(item_name)
    for tool in ("pickaxe", "axe", "shovel", "sword", "hoe"):
        if name.endswith("_" + tool):
            tier = name[:-(len(tool) + 1)]
            if tier in _TIER_RANK:
                return tool, tier
    return "none", "none"


def should_dig_block(block_name: str, held_item: Optional[str]) -> Tuple[bool, str]:
    """
    Decide whether a block may be dug with the held item.

    Blocks that need a pickaxe drop nothing when broken by hand, so they
    are refused rather than wasting the dig.

    Args:
        block_name: Block to dig
        held_item: Currently held item name, or None for bare hands

    Returns:
        Tuple of (allowed, reason)
    """
    name = normalize(block_name)
    if name in UNBREAKABLE_BLOCKS:
        return False, f"{name} cannot be broken"

    props = get_properties(name)
    if props.min_tier == 'none':
        return True, "ok"

    tool, tier = tool_info(held_item)
    if tool != props.tool:
        return False, f"{name} requires a {props.tool}"
    if _TIER_RANK[tier] < _TIER_RANK[props.min_tier]:
        return False, f"{name} requires at least a {props.min_tier} {props.tool}"
    return True, "ok"


def can_harvest(block_name: str, held_item: Optional[str]) -> bool:
    """Check if breaking the block with the held item yields its drops."""
    allowed, _ = should_dig_block(block_name, held_item)
    return allowed


def dig_time(block_name: str, held_item: Optional[str]) -> float:
    """Seconds needed to break a block; the right tool class halves it."""
    props = get_properties(block_name)
    tool, _ = tool_info(held_item)
    if props.tool != 'none' and tool == props.tool:
        return props.dig_time * 0.5
    return props.dig_time


def best_tool(block_name: str, item_names: Iterable[str]) -> Optional[str]:
    """
    Pick the highest-tier carried tool that can harvest a block.

    Args:
        block_name: Block to dig
        item_names: Names of carried items

    Returns:
        Item name of the best suitable tool, or None
    """
    props = get_properties(block_name)
    best, best_rank = None, -1
    for item in item_names:
        tool, tier = tool_info(item)
        if tool != props.tool:
            continue
        rank = _TIER_RANK[tier]
        if rank >= _TIER_RANK.get(props.min_tier, 0) and rank > best_rank:
            best, best_rank = normalize(item), rank
    return best
