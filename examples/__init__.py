"""
counterfactual-sig examples.

- verify_signature.py: verify a plain signature and a deployed-wallet
  signature against a node
- counterfactual_wallet.py: build a wrapped signature for an undeployed
  wallet and verify it, letting the verifier deploy the wallet
- common.py: shared configuration

Run them as modules::

    RPC_URL=http://127.0.0.1:8545 python -m examples.verify_signature

Configuration:
    All examples read their endpoints from environment variables, see
    examples.common.

Safety:
    The counterfactual example sends a deployment transaction. Run it against
    a development node or a fork.
"""
