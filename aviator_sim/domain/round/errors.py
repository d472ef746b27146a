# aviator_sim/domain/round/errors.py


class RoundError(Exception):
    """表示回合命令被拒绝的基类。状态不会改变。"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class InvalidBet(RoundError):
    """Bet below 1 or above the current balance."""
    def __init__(self, bet, balance, message=None):
        self.bet = bet
        self.balance = balance
        if message is None:
            if bet is None or bet < 1:
                message = f"Bet amount must be at least 1 coin (got {bet})"
            else:
                message = f"Insufficient balance: bet {bet} > balance {balance}"
        super().__init__(message)


class RoundAlreadyActive(RoundError):
    """startRound while another round has not been resolved."""
    def __init__(self, state_name: str):
        self.state_name = state_name
        super().__init__(f"Round already active (state={state_name})")


class NoActiveRound(RoundError):
    """Cash out or crash requested while no round is flying."""
    def __init__(self, state_name: str):
        self.state_name = state_name
        super().__init__(f"No active round to settle (state={state_name})")
