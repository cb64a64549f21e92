"""
Token Ledger Model for the Trove Ledger.

This module simulates the fungible debt token minted against troves. It handles
balances, allowances, minting and burning; mint and burn are restricted to an
allow-list of minters managed by the token's owner.
"""

import logging

from fixed_point import add_amount, checked_sub, require_amount, require_positive
from protocol_errors import InsufficientBalanceError, UnauthorizedError

logger = logging.getLogger(__name__)


class TokenLedger:
    """
    Simulates a fungible token with an owner-managed minter allow-list.
    """

    def __init__(self, owner, name="Debt Token", symbol="DEBT", decimals=9):
        self.name = name
        self.symbol = symbol
        self.decimals = decimals

        # Owner of the contract
        self.owner = owner

        # Total token supply
        self.total_supply = 0

        # Mapping of addresses to token balances
        self.balances = {}

        # Mapping of (owner, spender) to remaining allowance
        self.allowances = {}

        # Accounts that are allowed to mint and burn tokens
        self.minters = set()

    def add_minter(self, caller, minter):
        """
        Adds an address to the list of allowed minters.
        Only callable by the owner.
        """
        self._only_owner(caller)
        self.minters.add(minter)
        logger.info("%s: minter %s added", self.symbol, minter)

    def remove_minter(self, caller, minter):
        """
        Removes an address from the list of allowed minters.
        Only callable by the owner.
        """
        self._only_owner(caller)
        self.minters.discard(minter)
        logger.info("%s: minter %s removed", self.symbol, minter)

    def is_minter(self, account):
        return account in self.minters

    def balance_of(self, account):
        """Returns the token balance of the given account."""
        return self.balances.get(account, 0)

    def allowance(self, owner, spender):
        return self.allowances.get((owner, spender), 0)

    def approve(self, owner, spender, amount):
        """Sets the amount ``spender`` may move out of ``owner``'s balance."""
        require_amount(amount)
        self.allowances[(owner, spender)] = amount
        return True

    def transfer(self, sender, recipient, amount):
        """
        Transfers tokens from sender to recipient.

        Args:
            sender: Address sending the tokens
            recipient: Address receiving the tokens
            amount: Amount of tokens to transfer

        Returns:
            True if successful
        """
        require_positive(amount)
        self._move(sender, recipient, amount)
        return True

    def transfer_from(self, spender, owner, recipient, amount):
        """
        Transfers tokens out of ``owner``'s balance using ``spender``'s allowance.

        Args:
            spender: Address spending the allowance
            owner: Address whose tokens are moved
            recipient: Address receiving the tokens
            amount: Amount of tokens to transfer

        Returns:
            True if successful
        """
        require_positive(amount)

        allowed = self.allowance(owner, spender)
        if allowed < amount:
            raise InsufficientBalanceError("Insufficient allowance")

        self._move(owner, recipient, amount)
        self.allowances[(owner, spender)] = allowed - amount
        return True

    def mint(self, caller, recipient, amount):
        """
        Mints new tokens to the recipient account.
        Only callable by authorized minters.

        Args:
            caller: Address requesting the mint
            recipient: Address receiving the minted tokens
            amount: Amount of tokens to mint

        Returns:
            True if successful
        """
        self._only_minter(caller)
        require_positive(amount)

        new_supply = add_amount(self.total_supply, amount)
        new_balance = add_amount(self.balance_of(recipient), amount)

        self.balances[recipient] = new_balance
        self.total_supply = new_supply
        return True

    def burn(self, caller, from_account, amount):
        """
        Burns tokens from the given account.
        Only callable by authorized minters.

        Args:
            caller: Address requesting the burn
            from_account: Address to burn tokens from
            amount: Amount of tokens to burn

        Returns:
            True if successful
        """
        self._only_minter(caller)
        require_positive(amount)

        from_balance = self.balance_of(from_account)
        if from_balance < amount:
            raise InsufficientBalanceError("Insufficient balance")

        self.balances[from_account] = from_balance - amount
        self.total_supply = checked_sub(self.total_supply, amount)
        return True

    def _move(self, sender, recipient, amount):
        sender_balance = self.balance_of(sender)
        if sender_balance < amount:
            raise InsufficientBalanceError("Insufficient balance")

        if sender == recipient:
            return

        new_recipient_balance = add_amount(self.balance_of(recipient), amount)
        self.balances[sender] = sender_balance - amount
        self.balances[recipient] = new_recipient_balance

    def _only_owner(self, caller):
        if caller != self.owner:
            raise UnauthorizedError("Only owner")

    def _only_minter(self, caller):
        if caller not in self.minters:
            raise UnauthorizedError("Only minter")
