# ==============================================================================
# Ham or Spam Model Definition
# ==============================================================================
#
# PyTorch Lightning module for binary SMS classification.
#
# Model Architecture:
#   - Input: hashed TF-IDF vector (1024 features by default)
#   - Hidden: fully connected layers (200, 200) with ReLU
#   - Output: 2 logits (0: ham, 1: spam)
#
# Training Features:
#   - Cross-entropy loss plus L1 penalty on the linear-layer weights
#   - Adadelta adaptive learning rate (rho=0.99, eps=1e-8)
#   - Binary metrics: AUC, Accuracy, F1
#
# Usage:
#   model = HamSpamClassifier(num_features=1024, hidden=(200, 200), l1=1e-3)
#   trainer = pl.Trainer(max_epochs=10)
#   trainer.fit(model, train_dataloader, val_dataloader)
#
# Note:
#   This model expects input batches as dicts: {'features': tensor, 'target': tensor}
#   Designed for use with Ray Data iterators (not standard PyTorch DataLoaders)
#
# ==============================================================================

from typing import Dict, Sequence, Tuple

import lightning.pytorch as pl
import torch
import torchmetrics
from torchmetrics.classification import BinaryAccuracy, BinaryAUROC, BinaryF1Score

CAT_DOMAIN = ("ham", "spam")
SPAM_CLASS = CAT_DOMAIN.index("spam")


class HamSpamClassifier(pl.LightningModule):
    """Feed-forward spam classifier over hashed TF-IDF features."""

    def __init__(
        self,
        num_features: int = 1024,
        hidden: Sequence[int] = (200, 200),
        l1: float = 1e-3,
        lr: float = 1.0,
    ):
        super().__init__()
        self.save_hyperparameters()

        layers = []
        in_features = num_features
        for width in hidden:
            layers += [torch.nn.Linear(in_features, width), torch.nn.ReLU()]
            in_features = width
        layers.append(torch.nn.Linear(in_features, 2))
        self.model = torch.nn.Sequential(*layers)

        self.criterion = torch.nn.CrossEntropyLoss()
        self.l1 = l1
        self.lr = lr

        self.train_metrics = torchmetrics.MetricCollection(
            {
                "auc": BinaryAUROC(),
                "acc": BinaryAccuracy(),
                "f1": BinaryF1Score(),
            },
            prefix="train_",
        )
        self.val_metrics = self.train_metrics.clone(prefix="val_")

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.model(x)

    def l1_penalty(self) -> torch.Tensor:
        """Sum of absolute weights (biases excluded)."""
        return sum(
            layer.weight.abs().sum()
            for layer in self.model
            if isinstance(layer, torch.nn.Linear)
        )

    def spam_probability(self, x: torch.Tensor) -> torch.Tensor:
        return torch.softmax(self(x), dim=1)[:, SPAM_CLASS]

    def _shared_step(
        self, batch: Dict[str, torch.Tensor]
    ) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
        """Shared logic for train/val steps."""
        x = batch["features"]
        y = batch["target"]
        logits = self(x)
        loss = self.criterion(logits, y)
        probs = torch.softmax(logits, dim=1)[:, SPAM_CLASS]
        return loss, probs, y

    def training_step(
        self, batch: Dict[str, torch.Tensor], batch_idx: int
    ) -> torch.Tensor:
        loss, probs, targets = self._shared_step(batch)
        if self.l1:
            loss = loss + self.l1 * self.l1_penalty()

        self.train_metrics.update(probs, targets)
        self.log_dict(self.train_metrics, on_step=False, on_epoch=True, prog_bar=True)
        self.log("train_loss", loss, on_step=False, on_epoch=True, prog_bar=True)

        return loss

    def validation_step(self, batch: Dict[str, torch.Tensor], batch_idx: int) -> None:
        loss, probs, targets = self._shared_step(batch)

        self.val_metrics.update(probs, targets)
        self.log_dict(self.val_metrics, on_step=False, on_epoch=True, prog_bar=True)
        self.log("val_loss", loss, on_step=False, on_epoch=True, prog_bar=True)

    def configure_optimizers(self):
        return torch.optim.Adadelta(self.parameters(), lr=self.lr, rho=0.99, eps=1e-8)
