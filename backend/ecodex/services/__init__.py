# Services package init
"""
EcoDex Backend - Services Layer
=================================

What:  Business logic between routes (HTTP) and the database.

Service Inventory:
    - ImageNormalizer:   decode, bound to 800x600 and re-encode uploads as JPEG
    - SpeciesOracle (abstract) / GeminiOracleClient: multimodal model calls
    - oracle_parser:     JSON extraction and schema validation of oracle replies
    - rarity:            rarity tier, experience and level rules (pure functions)
    - DiscoveryLedger:   novelty check + entry insert + progression update, one transaction
    - DiscoveryPipeline: identify and chat orchestration
    - DiscoveryService / UserService: read-side queries and profile creation
"""
