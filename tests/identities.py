"""
Account identities shared by the test suites
"""

DEPLOYER = "deployer"
MINTER = "wallet_1"
ALICE = "wallet_2"
BOB = "wallet_3"
CAROL = "wallet_4"
