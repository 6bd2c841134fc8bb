"""
Generate fake creator engagement data for conversion pattern mining.
Creates one row per (user, creator) profile visit in the subscription layout,
with a planted creator pair whose joint viewers subscribe far more often.
"""

import random

import numpy as np
import pandas as pd

# Set random seed for reproducibility
np.random.seed(42)
random.seed(42)

N_CREATORS = 40
PLANTED_PAIR = ("CR_0003", "CR_0007")


def generate_engagement_data(n_users: int = 2000) -> pd.DataFrame:
    """Generate per-user creator profile views and subscription outcomes."""
    creators = [f"CR_{i:04d}" for i in range(N_CREATORS)]
    usernames = {c: f"creator_{i}" for i, c in enumerate(creators)}

    # Popularity follows a long tail
    popularity = np.random.pareto(1.5, N_CREATORS) + 1
    popularity = popularity / popularity.sum()

    rows = []
    for i in range(n_users):
        user_id = f"USER_{i + 1:06d}"

        n_viewed = min(N_CREATORS, np.random.poisson(4) + 1)
        viewed = set(np.random.choice(creators, size=n_viewed, replace=False, p=popularity))

        # Some users are steered toward the planted pair
        if random.random() < 0.15:
            viewed.update(PLANTED_PAIR)

        base_rate = 0.05
        if set(PLANTED_PAIR) <= viewed:
            base_rate = 0.45
        did_subscribe = random.random() < base_rate
        subscription_count = np.random.poisson(1.5) + 1 if did_subscribe else 0

        for creator_id in sorted(viewed):
            rows.append({
                'distinct_id': user_id,
                'creator_id': creator_id,
                'creator_username': usernames[creator_id],
                'profile_view_count': int(np.random.geometric(0.4)),
                'did_subscribe': did_subscribe,
                'subscription_count': int(subscription_count),
            })

    return pd.DataFrame(rows)


if __name__ == "__main__":
    print("Generating engagement data...")
    df = generate_engagement_data(2000)

    output_path = "data/engagement.csv"
    df.to_csv(output_path, index=False)
    print(f"Generated {len(df)} rows for {df['distinct_id'].nunique()} users")
    print(f"Saved to {output_path}")

    print("\nSubscription rate by planted-pair exposure:")
    pair_views = df[df['creator_id'].isin(PLANTED_PAIR)].groupby('distinct_id')['creator_id'].nunique()
    subscribed = df.groupby('distinct_id')['did_subscribe'].first()
    both = subscribed.index.isin(pair_views[pair_views == 2].index)
    print(subscribed.groupby(both).mean())
